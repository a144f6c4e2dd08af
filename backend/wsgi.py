# backend/wsgi.py
from latidos import create_app

app = create_app()
