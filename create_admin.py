# create_admin.py
from db import init_db, SessionLocal
from store import VoteStore
from exceptions import PersistenceError
from werkzeug.security import generate_password_hash
import config
import getpass


def main():
    config.configure_logging()
    init_db()
    email = input("Admin email: ").strip()
    name = input("Admin name (optional): ").strip() or None
    pwd = getpass.getpass("Admin password: ")
    store = VoteStore(SessionLocal)
    try:
        store.create_profile(email, generate_password_hash(pwd), name=name,
                             is_admin=True, is_approved=True)
    except PersistenceError as e:
        print(e.message)
        return
    print("Admin created.")


if __name__ == "__main__":
    main()
