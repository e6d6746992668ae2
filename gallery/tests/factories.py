import uuid

import factory
from django.contrib.auth import get_user_model

from gallery.models import Image


User = get_user_model()


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    id = factory.LazyFunction(uuid.uuid4)
    username = factory.Sequence(lambda n: f"user_{n}")
    email = factory.Sequence(lambda n: f"user_{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    password = factory.django.Password("defaultpassword")
    is_active = True
    is_email_verified = True


class SellerFactory(UserFactory):
    username = factory.Sequence(lambda n: f"seller_{n}")
    email = factory.Sequence(lambda n: f"seller_{n}@example.com")
    stripe_account_id = factory.Sequence(lambda n: f"acct_test_{n:06d}")
    stripe_account_completed = True


class StaffFactory(UserFactory):
    username = factory.Sequence(lambda n: f"staff_{n}")
    email = factory.Sequence(lambda n: f"staff_{n}@example.com")
    is_staff = True


class ImageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Image

    id = factory.LazyFunction(uuid.uuid4)
    user = factory.SubFactory(SellerFactory)
    url = factory.Sequence(lambda n: f"https://cdn.example.com/images/{n}.jpg")
    description = factory.Faker("sentence", nb_words=6)
    tags = factory.LazyFunction(lambda: ["nature", "landscape"])
    price = 0
    is_public = True


class ForSaleImageFactory(ImageFactory):
    price = 1000
    stripe_product_id = factory.Sequence(lambda n: f"prod_test_{n}")
    stripe_price_id = factory.Sequence(lambda n: f"price_test_{n}")
