import os

# Keep test runs from writing rotating log files
os.environ.setdefault("LOG_DIR", "")
