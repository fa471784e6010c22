"""
SmartBudget Canada - Streamlit Entry Point
==========================================
Run locally with `streamlit run streamlit_app.py`, or point Streamlit
Cloud at this file. Set OPENAI_API_KEY in the app secrets to switch the
AI coach out of offline mode.
"""

import os
import sys

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")

# The UI imports the backend modules by bare name
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import app  # noqa: E402,F401  (renders the UI on import)
