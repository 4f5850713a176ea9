# backend/wsgi.py
from fieldledger import create_app

app = create_app()
