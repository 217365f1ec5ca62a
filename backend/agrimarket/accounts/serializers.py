from rest_framework import serializers
from django.contrib.auth.models import User
from .models import Profile


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email']


class ProfileSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = Profile
        fields = [
            'id', 'user', 'role', 'display_name', 'location', 'profile_image',
            'average_rating', 'total_reviews',
        ]
        read_only_fields = ['role', 'average_rating', 'total_reviews']
