# backend/wsgi.py
# FLASK_APP target: python -m flask --app wsgi run
from workshop import create_app

app = create_app()
