"""CLI tools for back office administration."""
import click
from pymongo.database import Database

import database
from database import create_document, ensure_indexes
from schemas import Client, User
from security import hash_password

TEST_USERS = [
    {"name": "John Doe", "email": "john@example.com", "phone": "+91-9876543210",
     "address": "Mumbai, Maharashtra", "role": "admin"},
    {"name": "Jane Smith", "email": "jane@example.com", "phone": "+91-9876543211",
     "address": "Delhi, NCR", "role": "agent"},
    {"name": "Bob Johnson", "email": "bob@example.com", "phone": "+91-9876543212",
     "address": "Bangalore, Karnataka", "role": "manager"},
    {"name": "Alice Brown", "email": "alice@example.com", "phone": "+91-9876543213",
     "address": "Chennai, Tamil Nadu", "role": "agent"},
]

TEST_CLIENTS = [
    {
        "name": "Sarah Johnson", "email": "sarah.johnson@email.com", "phone": "+91-9876543210",
        "address": "Mumbai, Maharashtra", "type": "individual", "lead_source": "website",
        "preferences": {"property_types": ["Apartment"], "cities": ["Mumbai"],
                        "budget": {"min": 5000000, "max": 10000000}, "area": {"min": 800, "max": 1500}},
        "notes": "Interested in 2-3 BHK apartments in Mumbai. Prefers ready-to-move properties.",
    },
    {
        "name": "Rajesh Kumar", "email": "rajesh.kumar@email.com", "phone": "+91-9876543211",
        "address": "Delhi, NCR", "type": "individual", "lead_source": "referral",
        "preferences": {"property_types": ["Villa"], "cities": ["Gurgaon"],
                        "budget": {"min": 10000000, "max": 20000000}, "area": {"min": 2000, "max": 4000}},
        "notes": "Looking for luxury villas in Gurgaon. Prefers gated communities.",
    },
    {
        "name": "Priya Sharma", "email": "priya.sharma@email.com", "phone": "+91-9876543212",
        "address": "Bangalore, Karnataka", "type": "individual", "lead_source": "instagram",
        "preferences": {"property_types": ["Apartment"], "cities": ["Bangalore"],
                        "budget": {"min": 3000000, "max": 7000000}, "area": {"min": 500, "max": 1000}},
        "notes": "First-time homebuyer. Looking for 1-2 BHK apartments in Bangalore.",
    },
    {
        "name": "Amit Patel", "email": "amit.patel@email.com", "phone": "+91-9876543213",
        "address": "Pune, Maharashtra", "type": "broker", "lead_source": "walk-in",
        "preferences": {"property_types": ["Apartment", "House", "Villa", "Office"], "cities": ["Pune"],
                        "budget": {"min": 0, "max": 50000000}, "area": {"min": 0, "max": 10000}},
        "notes": "Real estate broker looking for properties to list.",
    },
    {
        "name": "Sunita Reddy", "email": "sunita.reddy@email.com", "phone": "+91-9876543214",
        "address": "Hyderabad, Telangana", "type": "individual", "lead_source": "facebook",
        "preferences": {"property_types": ["Apartment"], "cities": ["Hyderabad"],
                        "budget": {"min": 8000000, "max": 15000000}, "area": {"min": 1000, "max": 2000}},
        "notes": "Family of 4 looking for spacious 2-3 BHK in Hyderabad.",
    },
    {
        "name": "Vikram Singh", "email": "vikram.singh@email.com", "phone": "+91-9876543215",
        "address": "Chennai, Tamil Nadu", "type": "agency", "lead_source": "google",
        "preferences": {"property_types": ["Apartment", "House", "Villa", "Office", "Shop"], "cities": ["Chennai"],
                        "budget": {"min": 0, "max": 100000000}, "area": {"min": 0, "max": 20000}},
        "notes": "Property agency representing multiple clients.",
    },
]


def _db() -> Database:
    if database.db is None:
        raise click.ClickException("DATABASE_URL and DATABASE_NAME must be set")
    return database.db


def seed_users(db: Database, password: str) -> int:
    created = 0
    for data in TEST_USERS:
        if db["user"].find_one({"email": data["email"]}):
            click.echo(f"User {data['email']} already exists, skipping...")
            continue
        doc = User(**data, password_hash=hash_password(password)).model_dump()
        create_document(db, "user", doc)
        click.echo(f"✓ Created user: {data['email']} ({data['role']})")
        created += 1
    return created


def seed_clients(db: Database) -> int:
    created = 0
    for data in TEST_CLIENTS:
        if db["client"].find_one({"email": data["email"]}) or db["client"].find_one({"phone": data["phone"]}):
            click.echo(f"Client {data['email']} already exists, skipping...")
            continue
        create_document(db, "client", Client(**data).model_dump())
        click.echo(f"✓ Created client: {data['name']}")
        created += 1
    return created


@click.group()
def cli():
    """Brokerage back office CLI tools."""
    pass


@cli.command("ensure-indexes")
def ensure_indexes_command():
    """Create the unique and query indexes."""
    ensure_indexes(_db())
    click.echo("✓ Indexes ready")


@cli.command("create-user")
@click.option("--name", required=True, help="Full name")
@click.option("--email", required=True, help="Login email")
@click.option("--password", required=True, prompt=True, hide_input=True, help="Password")
@click.option("--role", type=click.Choice(["admin", "manager", "agent"]), default="agent", show_default=True)
def create_user(name: str, email: str, password: str, role: str):
    """Create a login user."""
    db = _db()
    email = email.lower().strip()
    if db["user"].find_one({"email": email}):
        raise click.ClickException(f"User {email} already exists")
    doc = User(name=name, email=email, password_hash=hash_password(password), role=role).model_dump()
    inserted = create_document(db, "user", doc)
    click.echo(f"✓ Created user {email} ({role}) id={inserted['_id']}")


@cli.command("seed-users")
@click.option("--password", default="password123", show_default=True, help="Password for every test user")
def seed_users_command(password: str):
    """Create the test users (admin, manager, agents)."""
    count = seed_users(_db(), password)
    click.echo(f"{count} test users created")


@cli.command("seed-clients")
def seed_clients_command():
    """Create sample clients."""
    count = seed_clients(_db())
    click.echo(f"{count} test clients created")


if __name__ == "__main__":
    cli()
