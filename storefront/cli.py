# storefront/cli.py
import click
from werkzeug.security import generate_password_hash
from .extensions import db
from .model import Category, Product, User
from .services import order_service

SAMPLE_CATEGORIES = [
    {"name": "Pizza", "slug": "pizza", "icon": "🍕", "sort_order": 1},
    {"name": "Burgers", "slug": "burgers", "icon": "🍔", "sort_order": 2},
    {"name": "Salads", "slug": "salads", "icon": "🥗", "sort_order": 3},
    {"name": "Drinks", "slug": "drinks", "icon": "🥤", "sort_order": 4},
]

SAMPLE_PRODUCTS = [
    {"name": "Margherita", "description": "Tomato, mozzarella, basil", "price": 12.50, "original_price": 14.00, "categories": ["pizza"], "tags": ["vegetarian"],
     "options": [{"key": "size", "name": "Size", "values": [{"value": "m", "label": "Medium"}, {"value": "l", "label": "Large"}]}]},
    {"name": "Pepperoni", "description": "Pepperoni, mozzarella", "price": 14.00, "categories": ["pizza"], "tags": ["spicy"]},
    {"name": "Classic Burger", "description": "Beef patty, cheddar, pickles", "price": 11.00, "categories": ["burgers"], "tags": []},
    {"name": "Veggie Burger", "description": "Chickpea patty, avocado", "price": 10.50, "categories": ["burgers", "salads"], "tags": ["vegetarian"]},
    {"name": "Caesar Salad", "description": "Romaine, parmesan, croutons", "price": 9.00, "categories": ["salads"], "tags": []},
    {"name": "Lemonade", "description": "Fresh lemonade", "price": 3.50, "categories": ["drinks"], "tags": ["cold"], "stock": 100},
]


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
def create_admin(email, password, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, password_hash=generate_password_hash(password), role="admin")
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("seed-catalog")
def seed_catalog():
    """Insert sample categories and products; existing slugs/names are left alone."""
    added = 0
    for data in SAMPLE_CATEGORIES:
        if not Category.query.filter_by(slug=data["slug"]).first():
            db.session.add(Category(**data)); added += 1
    for data in SAMPLE_PRODUCTS:
        if not Product.query.filter_by(name=data["name"]).first():
            db.session.add(Product(**data)); added += 1
    db.session.commit()
    click.echo(f"Seeded {added} catalog rows")


@click.command("orders-auto-cleanup")
@click.option("--actor", default="Auto-Cleanup System", show_default=True)
def orders_auto_cleanup(actor):
    result = order_service.auto_cleanup(actor)
    if not result["cleaned"]:
        click.echo(f"Skipped: {result['reason']}"); return
    click.echo(f"Moved {result['movedCount']} orders to history")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(seed_catalog)
    app.cli.add_command(orders_auto_cleanup)
