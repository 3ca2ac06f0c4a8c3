import unittest
import uuid
from unittest.mock import AsyncMock, patch

from sqlalchemy import select, func

from tests.support import DatabaseTestCase
from tripdesk.models import User
from tripdesk.services.official_identity import OfficialIdentity, OfficialIdentityResolver

CONFIGURED = OfficialIdentity(
    id=uuid.UUID("00000000-0000-0000-0000-0000000000bb"),
    username="tripdesk_official",
    full_name="TripDesk Official",
    email="official@tripdesk.app",
    profile_pic="https://cdn.example.com/official.png",
)


class TestOfficialIdentityResolver(DatabaseTestCase):

    @patch("tripdesk.services.official_identity.security.get_password_hash", return_value="hashed")
    async def test_creates_official_account_once(self, _hash):
        first = await OfficialIdentityResolver(self.session, CONFIGURED).ensure()
        second = await OfficialIdentityResolver(self.session, CONFIGURED).ensure()

        self.assertEqual(first.id, CONFIGURED.id)
        self.assertEqual(second.id, first.id)

        user = await self.session.get(User, CONFIGURED.id)
        self.assertTrue(user.is_official)
        self.assertTrue(user.is_verified)
        self.assertTrue(user.is_active)
        self.assertEqual(user.password_hash, "hashed")

        count = (await self.session.execute(
            select(func.count()).select_from(User).where(User.email == CONFIGURED.email)
        )).scalar_one()
        self.assertEqual(count, 1)

    async def test_finds_existing_account_by_email(self):
        existing = await self.make_user(username="someone_else", email=CONFIGURED.email, profile_pic=CONFIGURED.profile_pic)

        identity = await OfficialIdentityResolver(self.session, CONFIGURED).ensure()

        self.assertEqual(identity.id, existing.id)

    async def test_refreshes_drifted_avatar(self):
        await self.make_user(
            id=CONFIGURED.id,
            username=CONFIGURED.username,
            email=CONFIGURED.email,
            profile_pic="https://old.example.com/avatar.png",
        )

        identity = await OfficialIdentityResolver(self.session, CONFIGURED).ensure()

        self.assertEqual(identity.profile_pic, CONFIGURED.profile_pic)
        user = await self.session.get(User, CONFIGURED.id)
        self.assertEqual(user.profile_pic, CONFIGURED.profile_pic)

    async def test_failure_returns_none(self):
        resolver = OfficialIdentityResolver(self.session, CONFIGURED)
        with patch.object(resolver, "_find_existing", AsyncMock(side_effect=RuntimeError("db down"))):
            self.assertIsNone(await resolver.ensure())


if __name__ == "__main__":
    unittest.main()
