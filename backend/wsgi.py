# backend/wsgi.py
from inventory_pos import create_app

app = create_app()
