import os

# Test modules import config.test; make sure the app factory agrees
os.environ.setdefault("FLASK_ENV", "testing")
