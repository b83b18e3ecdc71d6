#!/usr/bin/env python3
"""
Provision bootstrap accounts and a few sample students/leads into the configured store.
Usage: python seed_data.py [--no-samples]
"""
import argparse
import sys
from pathlib import Path

# make `core` importable when run from anywhere
sys.path.insert(0, str(Path(__file__).resolve().parent))

from core.auth import BOOTSTRAP_ACCOUNTS, get_password_hash
from core.config import AppSettings
from core.models import InstallmentStatus, Lead, LeadStatus, PaymentPlan, Student, User, empty_installments
from core.store import EntityStore, build_store

SAMPLE_STUDENTS = [
    ("Youssef Adel", "01001234567", PaymentPlan.HALF, ("inst1",)),
    ("Mariam Hassan", "01007654321", PaymentPlan.FULL, ()),
    ("Ahmed Tarek", "01112223334", PaymentPlan.HALF, ()),
]

SAMPLE_LEADS = [
    ("Nour Khaled", "01223344556", LeadStatus.NEW, "Facebook"),
    ("Hany Mostafa", "01556677889", LeadStatus.INTERESTED, "Referral"),
]


def seed_users(store: EntityStore, password: str) -> None:
    for username, (user_id, display_name, role) in BOOTSTRAP_ACCOUNTS.items():
        if store.get("users", user_id) is not None:
            print(f"ℹ️ User already exists: {username}")
            continue
        store.create(
            "users",
            User(
                id=user_id,
                username=username,
                display_name=display_name,
                role=role,
                password_hash=get_password_hash(password),
            ),
        )
        print(f"✅ User created: {username} ({role.value})")


def seed_samples(store: EntityStore) -> None:
    for name, phone, plan, paid_slots in SAMPLE_STUDENTS:
        if store.find_one("students", phone=phone) is not None:
            print(f"ℹ️ Student already exists: {phone}")
            continue
        installments = empty_installments()
        for slot in paid_slots:
            installments[slot]["status"] = InstallmentStatus.PAID.value
        store.create("students", Student(name=name, phone=phone, plan=plan, installments=installments))
        print(f"✅ Student created: {name} ({plan.value})")

    for name, phone, status, source in SAMPLE_LEADS:
        if store.find_one("leads", phone=phone) is not None:
            print(f"ℹ️ Lead already exists: {phone}")
            continue
        store.create("leads", Lead(name=name, phone=phone, status=status, source=source))
        print(f"✅ Lead created: {name} ({status.value})")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--no-samples", action="store_true", help="only provision bootstrap accounts")
    args = parser.parse_args(argv)

    settings = AppSettings()
    store = build_store(settings)
    store.init()
    try:
        seed_users(store, settings.bootstrap_password)
        if not args.no_samples:
            seed_samples(store)
    finally:
        store.close()
    print("🎉 Seeding complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
