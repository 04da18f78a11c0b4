from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.carts.models import Cart, CartItem
from modules.products.models import Product, ProductType


class Command(BaseCommand):
    help = "Seed the database with a small pet-store catalog and demo carts."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        products = self._seed_products()
        carts = self._seed_carts(users, products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"products={len(products)}, "
                f"carts={carts}"
            )
        )

    def _seed_users(self) -> list:
        User = get_user_model()
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser(
                "admin", email="admin@petmart.test", password="admin123"
            )
        shoppers = []
        for username, first_name in (("asha", "Asha"), ("ravi", "Ravi")):
            user, created = User.objects.get_or_create(
                username=username,
                defaults={"first_name": first_name, "email": f"{username}@petmart.test"},
            )
            if created:
                user.set_password(f"{username}123")
                user.save(update_fields=["password"])
            shoppers.append(user)
        return shoppers

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        catalog = [
            ("Salmon Kibble 3kg", ProductType.FOOD, Decimal("24.50")),
            ("Chicken Wet Food 12-pack", ProductType.FOOD, Decimal("18.00")),
            ("Rope Tug Toy", ProductType.TOY, Decimal("6.99")),
            ("Feather Wand", ProductType.TOY, Decimal("4.50")),
            ("Oatmeal Shampoo", ProductType.CARE, Decimal("9.75")),
            ("Nail Clipper", ProductType.CARE, Decimal("7.20")),
            ("Padded Harness M", ProductType.ACCESSORY, Decimal("21.00")),
            ("Orthopedic Bed L", ProductType.ACCESSORY, Decimal("89.00")),
        ]
        products = []
        for name, product_type, price in catalog:
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "product_type": product_type,
                    "price": price,
                    "stock": random.randint(5, 60),
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_carts(self, users: list, products: list[Product]) -> int:
        self.stdout.write("Filling carts...")
        for user in users:
            cart, _ = Cart.objects.get_or_create(user=user)
            for product in random.sample(products, 3):
                CartItem.objects.get_or_create(
                    cart=cart,
                    product=product,
                    defaults={"quantity": random.randint(1, 3)},
                )
        self.stdout.write(self.style.SUCCESS("Filling carts... Done!"))
        return len(users)
