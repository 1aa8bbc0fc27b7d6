# backend/wsgi.py
from noor_pos import create_app

app = create_app()
