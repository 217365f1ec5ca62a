from django.db.models.signals import post_save
from django.dispatch import receiver
from django.conf import settings
from .models import Profile


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def ensure_profile(sender, instance, created, **kwargs):
    if created:
        Profile.objects.get_or_create(user=instance, defaults={"display_name": instance.username})


@receiver(post_save, sender="catalog.Product")
def promote_to_seller(sender, instance, created, **kwargs):
    # listing a product makes the owner a seller
    if created:
        (Profile.objects.filter(user_id=instance.seller_id)
         .exclude(role=Profile.Role.SELLER)
         .update(role=Profile.Role.SELLER))
