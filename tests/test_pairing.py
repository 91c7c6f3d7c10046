"""Tests for couple creation, joining and partner resolution."""

import pytest

from core.exceptions import InvalidCoupleSize, MarshmallowsError, NotFound, NotPaired
from core.models import Couple, Profile
from core.pairing import PairingDirectory, directory


pytestmark = pytest.mark.django_db


class TestResolve:

    def test_user_without_couple_is_not_paired(self, u1):
        with pytest.raises(NotPaired):
            directory.couple_for(u1)

    def test_waiting_couple_is_not_paired(self, u1, waiting_couple):
        assert directory.couple_for(u1) == waiting_couple
        with pytest.raises(NotPaired):
            directory.resolve_partner(u1)

    def test_partner_resolves_both_ways(self, u1, u2, couple):
        assert directory.resolve(u1) == (couple, u2)
        assert directory.resolve_partner(u2) == u1

    def test_accepts_raw_user_id(self, u1, u2, couple):
        assert directory.resolve_partner(u1.pk) == u2

    def test_corrupt_membership_is_fatal(self, make_user, couple):
        outsider = make_user('cal')
        # Profile points at a couple the user is not a member of
        Profile.objects.filter(user=outsider).update(couple=couple)

        with pytest.raises(InvalidCoupleSize) as exc_info:
            PairingDirectory().resolve(outsider)
        assert exc_info.value.status_code == 500
        assert exc_info.value.couple_id == couple.pk


class TestCreateAndJoin:

    def test_create_couple_generates_invite_code(self, u1):
        couple = directory.create_couple(u1, expected_partner=' ben ')

        assert couple.invite_code
        assert couple.expected_partner == 'ben'
        assert couple.member_names == {str(u1.pk): 'Ana'}
        assert Profile.objects.get(user=u1).couple == couple

    def test_cannot_create_second_couple(self, u1, waiting_couple):
        with pytest.raises(MarshmallowsError) as exc_info:
            directory.create_couple(u1)
        assert exc_info.value.status_code == 409
        assert Couple.objects.count() == 1

    def test_join_completes_couple(self, u1, u2, waiting_couple):
        joined = directory.join_couple(u2, waiting_couple.invite_code)

        assert joined.pk == waiting_couple.pk
        assert joined.member_ids == [u1.pk, u2.pk]
        assert joined.member_names[str(u2.pk)] == 'Ben'

    def test_third_member_is_rejected(self, make_user, u1, u2, couple):
        third = make_user('cal')

        with pytest.raises(InvalidCoupleSize) as exc_info:
            directory.join_couple(third, couple.invite_code)

        assert exc_info.value.status_code == 409
        couple.refresh_from_db()
        assert couple.member_ids == [u1.pk, u2.pk]
        assert Profile.objects.get(user=third).couple is None

    def test_cannot_join_own_couple(self, u1, waiting_couple):
        with pytest.raises(MarshmallowsError, match="can't join your own couple"):
            directory.join_couple(u1, waiting_couple.invite_code)

    def test_unknown_invite_code(self, u2):
        with pytest.raises(NotFound, match='Invalid invite code'):
            directory.join_couple(u2, 'nope')

    def test_empty_invite_code(self, u2):
        with pytest.raises(MarshmallowsError, match='Please enter an invite code'):
            directory.join_couple(u2, '  ')

    def test_invite_for_someone_else(self, make_user, u1, u2):
        couple = directory.create_couple(u1, expected_partner='cal')

        with pytest.raises(MarshmallowsError) as exc_info:
            directory.join_couple(u2, couple.invite_code)
        assert exc_info.value.status_code == 403

        directory.join_couple(make_user('cal'), couple.invite_code)


class TestPartnerSummary:

    def test_states(self, u1, u2):
        assert directory.partner_summary(u1)['state'] == 'unpaired'

        couple = directory.create_couple(u1)
        waiting = directory.partner_summary(u1)
        assert waiting['state'] == 'waiting'
        assert waiting['couple']['invite_code'] == couple.invite_code

        directory.join_couple(u2, couple.invite_code)
        paired = directory.partner_summary(u1)
        assert paired['state'] == 'paired'
        assert paired['partner'] == {'id': u2.pk, 'name': 'Ben', 'avatar_url': ''}
