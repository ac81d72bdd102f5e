from getpass import getpass

from fastapi import HTTPException
from pydantic import ValidationError

from .auth.security import ROLES
from .database import get_db
from .routes.auth import create_user
from .schemas.auth import UserCreate


def main():
    db = get_db()

    print("Create a SchoolBoard user")
    username = input("Username: ").strip()
    email = input("Email: ").strip()
    full_name = input("Full name (optional): ").strip() or None
    role = input(f"Role [{'/'.join(ROLES)}] (admin): ").strip() or "admin"
    password = getpass("Password: ")

    try:
        create_user(
            db,
            UserCreate(
                username=username, email=email, full_name=full_name, role=role, password=password
            ),
        )
    except ValidationError as exc:
        print(exc)
        return
    except HTTPException as exc:
        print(exc.detail)
        return
    print(f"{role.capitalize()} user '{username}' created successfully.")


if __name__ == "__main__":
    main()
