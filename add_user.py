import sys
import bcrypt

from db import SessionLocal, init_db
from queries import get_user, create_user

# Check for correct number of arguments
if len(sys.argv) != 3:
    print("Usage: python add_user.py <username> <password>")
    sys.exit(1)

username = sys.argv[1]
password = sys.argv[2]

# Hash the password securely
hashed_password = bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

init_db()
db = SessionLocal()
try:
    if get_user(db, username):
        print(f"❌ Error: Username '{username}' already exists.")
        sys.exit(1)
    create_user(db, username, hashed_password)
    print(f"✅ User '{username}' created successfully.")
finally:
    db.close()
