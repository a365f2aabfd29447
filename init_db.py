# init_db.py

import logging

from db import engine, init_db
from storage import ensure_root_folder

logging.basicConfig(level=logging.INFO)

# Create tables and the user-files root if they don't exist
init_db(engine)
ensure_root_folder()

print("✅ Database initialized!")
