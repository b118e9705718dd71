"""API tests for token authentication and user roles."""

from __future__ import annotations

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.users.models import User
from shared.domain.value_objects import Actor


class AuthAPITests(APITestCase):
    def test_obtain_token_with_email(self) -> None:
        User.objects.create_user(email="player@example.com", username="player", password="StrongPass123")

        response = self.client.post(
            reverse("auth:token_obtain_pair"),
            {"email": "player@example.com", "password": "StrongPass123"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertIn("access", response.data)
        self.assertIn("refresh", response.data)

    def test_wrong_password_is_rejected(self) -> None:
        User.objects.create_user(email="player@example.com", username="player", password="StrongPass123")

        response = self.client.post(
            reverse("auth:token_obtain_pair"),
            {"email": "player@example.com", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class UserActorTests(APITestCase):
    def test_actor_carries_role(self) -> None:
        owner = User.objects.create_user(
            email="owner@example.com",
            username="owner",
            role=User.RoleChoices.FACILITY_OWNER,
        )

        self.assertEqual(owner.actor, Actor(user_id=owner.pk, role=Actor.FACILITY_OWNER))
        self.assertTrue(owner.actor.is_owner)

    def test_superuser_acts_as_admin(self) -> None:
        admin = User.objects.create_superuser(email="root@example.com", username="root", password="x" * 10)

        self.assertTrue(admin.actor.is_admin)
        self.assertFalse(User.objects.create_user(email="p@example.com", username="p").actor.is_admin)
