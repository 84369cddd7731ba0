"""
WSGI entry point for the challenge store.

Point the host's WSGI configuration at this file:
  - Source code:    /home/<your-username>/upload-challenge
  - Working dir:    /home/<your-username>/upload-challenge
  - WSGI file:      /home/<your-username>/upload-challenge/wsgi.py
  - Virtualenv:     /home/<your-username>/upload-challenge/.venv
"""
import sys
import os

# Make sure the project directory is on the path
project_dir = os.path.dirname(os.path.abspath(__file__))
if project_dir not in sys.path:
    sys.path.insert(0, project_dir)

from challenge.logger import configure_logging  # noqa: E402

configure_logging()

from app import app as application  # noqa: E402,F401  (WSGI servers look for 'application')
