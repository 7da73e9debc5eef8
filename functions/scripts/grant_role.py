"""
Grant an admin role to an existing user.

The user is looked up in Firebase Auth by uid or email and `role` is set on
their `users` document. A missing document is created with default fields.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import firebase_admin
from firebase_admin import auth, credentials, firestore
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from credits.ledger import initialize_new_user
from shared.firebase_constants import USERS_COLLECTION
from shared.types import UserRole

logger = logging.getLogger(__name__)

GRANTABLE_ROLES = [UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value]


def find_user(uid: str | None = None, email: str | None = None):
    """Returns the Firebase Auth user record, by uid when given, else by email."""
    if uid:
        return auth.get_user(uid)
    return auth.get_user_by_email(email)


def grant_role(db, user_record, role: str) -> bool:
    """
    Sets `role` on the user's document.

    Returns:
        True if an existing document was updated, False if one was created.
    """
    user_ref = db.collection(USERS_COLLECTION).document(user_record.uid)
    user_doc = user_ref.get()
    if user_doc.exists:
        current = (user_doc.to_dict() or {}).get("role") or "not set"
        logger.info("Current role: %s", current)
        user_ref.update({"role": role, "updatedAt": SERVER_TIMESTAMP})
        return True

    profile = {
        "id": user_record.uid,
        "email": user_record.email,
        "name": user_record.display_name or "Admin",
        "role": role,
        "plan": "free",
        "status": "active",
        "isVerified": bool(user_record.email_verified),
        "updatedAt": SERVER_TIMESTAMP,
    }
    user_ref.set({**profile, **initialize_new_user(profile, None)})
    return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Grant an admin role to a user")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--uid", type=str, help="Firebase Auth uid")
    target.add_argument("--email", type=str, help="Account email")
    parser.add_argument(
        "--role",
        type=str,
        choices=GRANTABLE_ROLES,
        default=UserRole.SUPER_ADMIN.value,
        help="Role to grant",
    )
    parser.add_argument(
        "--credentials",
        type=str,
        default=None,
        help="Path to a service account key (defaults to application credentials)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    if args.credentials:
        firebase_admin.initialize_app(credentials.Certificate(args.credentials))
    else:
        firebase_admin.initialize_app()

    try:
        user_record = find_user(uid=args.uid, email=args.email)
    except auth.UserNotFoundError:
        logger.error(
            "User %s not found in Firebase Auth; they must sign up first",
            args.uid or args.email,
        )
        return 1

    updated = grant_role(firestore.client(), user_record, args.role)
    logger.info(
        "%s user %s with role %s",
        "Updated" if updated else "Created",
        user_record.uid,
        args.role,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
