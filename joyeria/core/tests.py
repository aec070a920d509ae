"""
Test suite for the core module
Tests: login and lockout, MFA, password recovery, role checks, user administration
"""
from datetime import timedelta
from io import StringIO

import pyotp
from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from joyeria.core.models import AuditLog, PasswordResetToken, Role, User
from joyeria.core.test_utils import AuthenticatedAPIClient, TestDataFactory
from joyeria.core.tokens import issue_access_token
from joyeria.core.utils import create_audit_log, id_param, money, parse_iso_date, to_decimal, to_id
from joyeria.core.views import MAX_FAILED_LOGINS, issue_reset_token
from joyeria.locations.models import Branch, Location


class LoginTests(TestCase):
    """Password login, lockout and the ``me`` endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_cashier(username='cajera1', email='Cajera1@Test.com')

    def test_login_with_email_is_case_insensitive(self):
        response = self.client.post('/api/auth/login/', {'identifier': 'cajera1@test.com', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['ok'])
        self.assertIn('token', response.data['data'])
        self.assertEqual(response.data['data']['user']['rol'], Role.CASHIER)
        self.assertTrue(AuditLog.objects.filter(action='login', object_id=str(self.user.pk)).exists())

    def test_login_with_username(self):
        response = self.client.post('/api/auth/login/', {'identifier': 'CAJERA1', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_requires_credentials(self):
        response = self.client.post('/api/auth/login/', {'identifier': 'cajera1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['ok'])

    def test_wrong_password_counts_failure(self):
        response = self.client.post('/api/auth/login/', {'identifier': 'cajera1', 'password': 'wrong'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.user.refresh_from_db()
        self.assertEqual(self.user.failed_login_count, 1)

    def test_account_locks_after_repeated_failures(self):
        for _ in range(MAX_FAILED_LOGINS):
            self.client.post('/api/auth/login/', {'identifier': 'cajera1', 'password': 'wrong'}, format='json')
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.lock_until)

        response = self.client.post('/api/auth/login/', {'identifier': 'cajera1', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_423_LOCKED)
        self.assertIn('lockUntil', response.data)

    def test_successful_login_resets_counter(self):
        User.objects.filter(pk=self.user.pk).update(failed_login_count=3)
        self.client.post('/api/auth/login/', {'identifier': 'cajera1', 'password': 'testpass123'}, format='json')
        self.user.refresh_from_db()
        self.assertEqual(self.user.failed_login_count, 0)

    def test_inactive_user_cannot_login(self):
        User.objects.filter(pk=self.user.pk).update(is_active=False)
        response = self.client.post('/api/auth/login/', {'identifier': 'cajera1', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_token(self):
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Token requerido')

    def test_me_rejects_garbage_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['ok'])

    def test_expired_access_token_rejected(self):
        token = issue_access_token(self.user)
        token.set_exp(lifetime=-timedelta(seconds=5))
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        for url in ('/api/auth/me/', '/api/cash/summary/'):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED, url)
            self.assertEqual(response.data['message'], 'Token inválido')

    def test_me_returns_profile(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['user']['username'], 'cajera1')


class RegisterTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        TestDataFactory.get_role(Role.CASHIER)

    def test_admin_registers_user(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/auth/register/', {
            'nombre': 'Ana Pérez', 'email': 'ana@test.com', 'password': 'secreto123', 'rolNombre': 'cajero',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(email='ana@test.com')
        self.assertEqual(user.username, 'ana')
        self.assertEqual(user.role_name, Role.CASHIER)

    def test_duplicate_email_conflicts(self):
        self.client.authenticate_user(self.admin)
        payload = {'nombre': 'Ana', 'email': 'ana@test.com', 'password': 'secreto123', 'rolNombre': 'CAJERO'}
        self.client.post('/api/auth/register/', payload, format='json')
        response = self.client.post('/api/auth/register/', dict(payload, email='ANA@test.com'), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_short_password_rejected(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/auth/register/', {
            'nombre': 'Ana', 'email': 'ana@test.com', 'password': 'corta', 'rolNombre': 'CAJERO',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_cannot_register(self):
        self.client.authenticate_user(TestDataFactory.create_cashier())
        response = self.client.post('/api/auth/register/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Sin permisos')


class MfaTests(TestCase):
    """TOTP enrollment and the two-step login"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin(username='jefa')
        self.client.authenticate_user(self.admin)

    def _enroll(self):
        secret = self.client.post('/api/auth/mfa/setup/').data['data']['secret']
        response = self.client.post('/api/auth/mfa/confirm/', {'code': pyotp.TOTP(secret).now()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return secret

    def test_setup_returns_provisioning_uri(self):
        response = self.client.post('/api/auth/mfa/setup/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['otpauth_url'].startswith('otpauth://totp/'))
        self.admin.refresh_from_db()
        self.assertFalse(self.admin.mfa_enabled)
        self.assertEqual(self.admin.mfa_temp_secret, response.data['data']['secret'])

    def test_confirm_rejects_bad_code(self):
        self.client.post('/api/auth/mfa/setup/')
        response = self.client.post('/api/auth/mfa/confirm/', {'code': '000000x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_requires_second_step(self):
        secret = self._enroll()
        self.client.logout()

        response = self.client.post('/api/auth/login/', {'identifier': 'jefa', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['mfaRequired'])
        self.assertNotIn('token', response.data['data'])

        response = self.client.post('/api/auth/mfa/verify-login/', {
            'mfaToken': response.data['data']['mfaToken'], 'code': pyotp.TOTP(secret).now(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('token', response.data['data'])

    def test_verify_login_rejects_access_token(self):
        self._enroll()
        response = self.client.post('/api/auth/mfa/verify-login/', {
            'mfaToken': self.client.token, 'code': '123456',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_disable(self):
        secret = self._enroll()
        response = self.client.post('/api/auth/mfa/disable/', {'code': pyotp.TOTP(secret).now()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.admin.refresh_from_db()
        self.assertFalse(self.admin.mfa_enabled)
        self.assertIsNone(self.admin.mfa_secret)

    def test_cashier_cannot_enroll(self):
        self.client.authenticate_user(TestDataFactory.create_cashier())
        response = self.client.post('/api/auth/mfa/setup/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PasswordRecoveryTests(TestCase):
    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_cashier(email='olvido@test.com')

    def test_forgot_password_sends_mail(self):
        response = self.client.post('/api/auth/forgot-password/', {'email': 'OLVIDO@test.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('token=', mail.outbox[0].body)
        self.assertEqual(PasswordResetToken.objects.filter(user=self.user).count(), 1)

    def test_unknown_email_gets_same_answer(self):
        known = self.client.post('/api/auth/forgot-password/', {'email': 'olvido@test.com'}, format='json')
        unknown = self.client.post('/api/auth/forgot-password/', {'email': 'nadie@test.com'}, format='json')
        self.assertEqual(known.data['message'], unknown.data['message'])
        self.assertEqual(len(mail.outbox), 1)

    def test_cooldown_blocks_second_mail(self):
        self.client.post('/api/auth/forgot-password/', {'email': 'olvido@test.com'}, format='json')
        self.client.post('/api/auth/forgot-password/', {'email': 'olvido@test.com'}, format='json')
        self.assertEqual(len(mail.outbox), 1)

    def test_validate_and_reset(self):
        raw_token, _ = issue_reset_token(self.user)
        response = self.client.get('/api/auth/reset-password/validate/',
                                   {'email': 'olvido@test.com', 'token': raw_token})
        self.assertTrue(response.data['data']['valid'])

        response = self.client.post('/api/auth/reset-password/', {
            'email': 'olvido@test.com', 'token': raw_token, 'newPassword': 'nuevaClave1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('nuevaClave1'))
        self.assertIsNotNone(self.user.password_changed_at)

        response = self.client.post('/api/auth/reset-password/validate/',
                                    {'email': 'olvido@test.com', 'token': raw_token}, format='json')
        self.assertFalse(response.data['data']['valid'])

    def test_expired_token_rejected(self):
        raw_token, record = issue_reset_token(self.user)
        PasswordResetToken.objects.filter(pk=record.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        response = self.client.post('/api/auth/reset-password/', {
            'email': 'olvido@test.com', 'token': raw_token, 'newPassword': 'nuevaClave1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_new_token_invalidates_previous(self):
        first, _ = issue_reset_token(self.user)
        issue_reset_token(self.user)
        response = self.client.get('/api/auth/reset-password/validate/', {'email': 'olvido@test.com', 'token': first})
        self.assertFalse(response.data['data']['valid'])


class AdminUserTests(TestCase):
    """User administration with strict token checks"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.branch = TestDataFactory.create_branch()
        self.admin = TestDataFactory.create_admin(branch=self.branch)
        self.cashier_role = TestDataFactory.get_role(Role.CASHIER)
        self.client.authenticate_user(self.admin)

    def test_lists(self):
        for url in ('/api/admin/roles/', '/api/admin/sucursales/', '/api/admin/users/'):
            response = self.client.get(url)
            self.assertEqual(response.status_code, status.HTTP_200_OK, url)
            self.assertIsInstance(response.data['data']['items'], list)

    def test_cashier_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_cashier())
        response = self.client.get('/api/admin/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_token_issued_before_password_change_is_rejected(self):
        User.objects.filter(pk=self.admin.pk).update(password_changed_at=timezone.now() + timedelta(minutes=5))
        response = self.client.get('/api/admin/users/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_invite_without_password_sends_setup_mail(self):
        response = self.client.post('/api/admin/users/invite/', {
            'nombre': 'María José López', 'email': 'mj@test.com', 'rolId': self.cashier_role.pk,
            'sucursalId': self.branch.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['setupSent'])
        self.assertEqual(response.data['data']['user']['username'], 'maria.jose.lopez')
        self.assertEqual(len(mail.outbox), 1)
        self.assertTrue(PasswordResetToken.objects.filter(user__email='mj@test.com', used_at__isnull=True).exists())

    def test_invite_with_password(self):
        response = self.client.post('/api/admin/users/invite/', {
            'nombre': 'Luis', 'email': 'luis@test.com', 'rolId': self.cashier_role.pk, 'password': 'clave1234',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['setupSent'])
        self.assertEqual(len(mail.outbox), 0)
        self.assertTrue(User.objects.get(email='luis@test.com').check_password('clave1234'))

    def test_invite_invalid_role(self):
        response = self.client.post('/api/admin/users/invite/', {
            'nombre': 'Luis', 'email': 'luis@test.com', 'rolId': 9999,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_user(self):
        user = TestDataFactory.create_cashier()
        response = self.client.put(f'/api/admin/users/{user.pk}/', {
            'nombre': 'Nuevo Nombre', 'email': user.email, 'rolId': self.cashier_role.pk,
            'sucursalId': self.branch.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.nombre, 'Nuevo Nombre')
        self.assertEqual(user.branch_id, self.branch.pk)

    def test_delete_user(self):
        user = TestDataFactory.create_cashier()
        response = self.client.delete(f'/api/admin/users/{user.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.filter(pk=user.pk).exists())

    def test_delete_user_with_sales_conflicts(self):
        user = TestDataFactory.create_cashier(branch=self.branch)
        TestDataFactory.create_sale(user, self.branch, TestDataFactory.create_product())
        response = self.client.delete(f'/api/admin/users/{user.pk}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class UtilsTests(TestCase):
    def test_parse_iso_date(self):
        self.assertEqual(parse_iso_date('2024-02-29').isoformat(), '2024-02-29')
        self.assertIsNone(parse_iso_date('2024-02-30'))
        self.assertIsNone(parse_iso_date('29/02/2024'))

    def test_to_decimal_and_money(self):
        self.assertEqual(str(money(to_decimal('10.005'))), '10.01')
        self.assertIsNone(to_decimal('abc'))

    def test_id_params(self):
        self.assertEqual(to_id(' 42 '), 42)
        self.assertEqual(to_id(7.0), 7)
        for value in ('abc', '0', '-3', '1.5', True, 2 ** 63):
            self.assertIsNone(to_id(value), value)
        self.assertEqual(id_param({}, 'userId'), (None, True))
        self.assertEqual(id_param({'userId': '5'}, 'userId'), (5, True))
        self.assertEqual(id_param({'userId': 'abc'}, 'userId'), (None, False))

    def test_audit_log_skipped_without_object(self):
        create_audit_log(action='update', model_name='Product', object_id=None)
        self.assertEqual(AuditLog.objects.count(), 0)


class SeedCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        out = StringIO()
        call_command('seed_initial_data', '--admin-username', 'admin', '--admin-email', 'Admin@Test.com',
                     '--admin-password', 'clave1234', stdout=out)
        call_command('seed_initial_data', stdout=out)

        self.assertEqual(Role.objects.filter(name__in=[Role.ADMIN, Role.CASHIER]).count(), 2)
        branch = Branch.objects.get(code='SP')
        self.assertTrue(Location.objects.filter(branch=branch, name='VITRINA', is_showcase=True).exists())
        self.assertTrue(Location.objects.filter(branch=branch, name='BODEGA', is_storeroom=True).exists())
        admin = User.objects.get(username='admin')
        self.assertTrue(admin.is_admin_role)
        self.assertEqual(admin.email, 'admin@test.com')
