# create_user.py
import asyncio
import sys
from getpass import getpass
from typing import Optional

from pydantic import ValidationError

from library_api.api.v1.endpoints.auth import create_user as register_user
from library_api.core.errors import LibraryError
from library_api.db import database
from library_api.models.user import User


async def create_user(
    username: str,
    password: str,
    company: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
) -> User:
    """Insert a lending account. Expects Beanie to be initialized already."""
    user_in = User.Create(username=username, password=password, company=company, email=email, full_name=full_name)
    return await register_user(user_in)


def _prompt(label: str, required: bool = True) -> Optional[str]:
    while True:
        value = input(label).strip()
        if value or not required:
            return value or None
        print("Value cannot be empty.")


async def main() -> int:
    print("--- Create Lending User ---")
    await database.init_db()
    try:
        username = _prompt("Username: ")
        company = _prompt("Company: ")
        while True:
            password = getpass("Password: ")
            if password and password == getpass("Confirm password: "):
                break
            print("Passwords are empty or do not match. Please try again.")
        email = _prompt("Email (optional): ", required=False)
        full_name = _prompt("Full name (optional): ", required=False)

        try:
            user = await create_user(username, password, company, email=email, full_name=full_name)
        except (LibraryError, ValidationError) as e:
            print(f"Error: {e}")
            return 1
        print(f"User '{user.username}' created for company '{user.company}'.")
        return 0
    finally:
        database.close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
