from unittest.mock import MagicMock

from django.test import TestCase

from gallery.models import Image
from gallery.services import ImageService
from gallery.tests.factories import ForSaleImageFactory, ImageFactory, SellerFactory, UserFactory
from infrastructure.payments import MockPaymentProvider, PaymentException, PaymentProviderInterface
from payment_system.config import PaymentConfig
from utils.service_base import ErrorCodes


class ImageServiceListTest(TestCase):
    def setUp(self):
        self.service = ImageService(payment_provider=MockPaymentProvider(), config=PaymentConfig())
        self.owner = SellerFactory()
        self.other = UserFactory()

        self.sunset = ImageFactory(user=self.owner, description="Sunset over the bay", tags=["sea", "sunset"], price=500)
        self.forest = ImageFactory(user=self.owner, description="Pine forest", tags=["forest", "trees"], price=1500)
        self.private = ImageFactory(user=self.owner, description="Private draft", is_public=False)
        self.deleted = ImageFactory(user=self.owner, is_deleted=True)

    def test_anonymous_sees_only_public_active_images(self):
        result = self.service.list_images()

        self.assertTrue(result.ok)
        ids = {image.id for image in result.value["results"]}
        self.assertEqual(ids, {self.sunset.id, self.forest.id})
        self.assertEqual(result.value["count"], 2)

    def test_owner_also_sees_private_images(self):
        result = self.service.list_images(viewer=self.owner)

        ids = {image.id for image in result.value["results"]}
        self.assertIn(self.private.id, ids)
        self.assertNotIn(self.deleted.id, ids)

    def test_other_user_does_not_see_private_images(self):
        result = self.service.list_images(viewer=self.other)

        ids = {image.id for image in result.value["results"]}
        self.assertNotIn(self.private.id, ids)

    def test_filters_by_price_range(self):
        result = self.service.list_images(filters={"price_min": 1000, "price_max": 2000})

        self.assertEqual([image.id for image in result.value["results"]], [self.forest.id])

    def test_filters_by_tags_case_insensitive(self):
        result = self.service.list_images(filters={"tags": ["SUNSET"]})

        self.assertEqual([image.id for image in result.value["results"]], [self.sunset.id])

    def test_text_query_matches_description_or_tags(self):
        by_description = self.service.list_images(filters={"q": "pine"})
        by_tag = self.service.list_images(filters={"q": "sea"})

        self.assertEqual([image.id for image in by_description.value["results"]], [self.forest.id])
        self.assertEqual([image.id for image in by_tag.value["results"]], [self.sunset.id])

    def test_offset_and_limit(self):
        result = self.service.list_images(offset=1, limit=1)

        self.assertEqual(len(result.value["results"]), 1)
        self.assertEqual(result.value["count"], 2)


class ImageServicePricingTest(TestCase):
    def setUp(self):
        self.provider = MockPaymentProvider()
        self.service = ImageService(payment_provider=self.provider, config=PaymentConfig())
        self.seller = SellerFactory()
        self.image = ImageFactory(user=self.seller)

    def test_update_prices_registers_price_handle(self):
        result = self.service.update_prices(self.seller, [(str(self.image.id), 1200)])

        self.assertTrue(result.ok)
        self.image.refresh_from_db()
        self.assertEqual(self.image.price, 1200)
        self.assertEqual(self.image.stripe_price_id, self.provider.prices[0].price_id)
        self.assertEqual(self.provider.prices[0].amount, 1200)
        self.assertTrue(self.image.is_chargeable)

    def test_zero_price_takes_image_off_sale(self):
        listed = ForSaleImageFactory(user=self.seller)

        result = self.service.update_prices(self.seller, [(str(listed.id), 0)])

        self.assertTrue(result.ok)
        listed.refresh_from_db()
        self.assertEqual(listed.price, 0)
        self.assertIsNone(listed.stripe_price_id)
        self.assertEqual(self.provider.prices, [])

    def test_unchanged_price_keeps_existing_handle(self):
        listed = ForSaleImageFactory(user=self.seller, price=1000)
        original_price_id = listed.stripe_price_id

        self.service.update_prices(self.seller, [(str(listed.id), 1000)])

        listed.refresh_from_db()
        self.assertEqual(listed.stripe_price_id, original_price_id)
        self.assertEqual(self.provider.prices, [])

    def test_seller_without_payout_account_cannot_list(self):
        buyer = UserFactory()
        image = ImageFactory(user=buyer)

        result = self.service.update_prices(buyer, [(str(image.id), 500)])

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.NOT_ALLOWED)

    def test_cannot_price_someone_elses_image(self):
        other_image = ImageFactory()

        result = self.service.update_prices(self.seller, [(str(other_image.id), 500)])

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.NOT_FOUND)

    def test_provider_failure_leaves_images_unchanged(self):
        provider = MagicMock(spec=PaymentProviderInterface)
        provider.create_price.side_effect = PaymentException("boom")
        service = ImageService(payment_provider=provider, config=PaymentConfig())

        result = service.update_prices(self.seller, [(str(self.image.id), 700)])

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.PAYMENT_PROVIDER_ERROR)
        self.image.refresh_from_db()
        self.assertEqual(self.image.price, 0)

    def test_create_images_with_price_lists_them(self):
        result = self.service.create_images(
            self.seller,
            urls=["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"],
            tags=["city", "night"],
            price=800,
        )

        self.assertTrue(result.ok)
        self.assertEqual(len(result.value), 2)
        self.assertTrue(all(image.is_chargeable for image in result.value))
        self.assertEqual(len(self.provider.prices), 2)

    def test_create_images_requires_two_tags(self):
        result = self.service.create_images(self.seller, urls=["https://cdn.example.com/a.jpg"], tags=["one"])

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.INVALID_REQUEST)


class ImageServiceVisibilityAndDeleteTest(TestCase):
    def setUp(self):
        self.service = ImageService(payment_provider=MockPaymentProvider(), config=PaymentConfig())
        self.owner = SellerFactory()
        self.images = ImageFactory.create_batch(3, user=self.owner)
        self.foreign = ImageFactory()

    def test_change_visibility_only_touches_owned_images(self):
        ids = [str(self.images[0].id), str(self.foreign.id)]

        result = self.service.change_visibility(self.owner, ids, is_public=False)

        self.assertTrue(result.ok)
        self.assertEqual(result.value, 1)
        self.foreign.refresh_from_db()
        self.assertTrue(self.foreign.is_public)

    def test_delete_is_soft(self):
        result = self.service.delete_images(self.owner, [str(self.images[0].id)])

        self.assertTrue(result.ok)
        self.assertEqual(result.value, 1)
        deleted = Image.objects.get(pk=self.images[0].id)
        self.assertTrue(deleted.is_deleted)
        self.assertIsNotNone(deleted.deleted_at)

    def test_delete_all_images(self):
        result = self.service.delete_images(self.owner, all_images=True)

        self.assertEqual(result.value, 3)
        self.assertFalse(Image.objects.owned_by(self.owner).exists())
        self.assertFalse(Image.objects.get(pk=self.foreign.id).is_deleted)

    def test_delete_without_ids_is_rejected(self):
        result = self.service.delete_images(self.owner)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.INVALID_REQUEST)
