"""
Management command to create the roles, the fallback branch and an admin user
"""
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from joyeria.core.models import Role, User
from joyeria.locations.models import Branch, Location


class Command(BaseCommand):
    help = "Creates the ADMIN/CAJERO roles, the fallback branch with VITRINA and BODEGA, and optionally an admin user"

    def add_arguments(self, parser):
        parser.add_argument(
            '--admin-username',
            help='Create (or refresh) an ADMIN user with this username',
        )
        parser.add_argument(
            '--admin-email',
            help='Email for the admin user (required with --admin-username)',
        )
        parser.add_argument(
            '--admin-password',
            help='Password for the admin user (required with --admin-username)',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        roles = {}
        for name, description in ((Role.ADMIN, 'Administrador'), (Role.CASHIER, 'Cajera / cajero')):
            role, created = Role.objects.get_or_create(name=name, defaults={'description': description})
            roles[name] = role
            self._report(created, f'role {name}')

        branch, created = Branch.objects.get_or_create(
            code=settings.FALLBACK_BRANCH_CODE,
            defaults={'name': 'Sucursal Principal'},
        )
        self._report(created, f'branch {branch.code}')

        for name, flags in ((Location.SHOWCASE, {'is_showcase': True}), (Location.STOREROOM, {'is_storeroom': True})):
            location, created = Location.objects.get_or_create(branch=branch, name=name, defaults=flags)
            if not created:
                Location.objects.filter(pk=location.pk).update(**flags)
            self._report(created, f'location {branch.code}/{name}')

        username = options.get('admin_username')
        if not username:
            return
        email, password = options.get('admin_email'), options.get('admin_password')
        if not email or not password:
            raise CommandError('--admin-email and --admin-password are required with --admin-username')

        user = User.objects.filter(username=username).first()
        created = user is None
        if created:
            user = User(username=username)
        user.email = email.strip().lower()
        user.nombre = user.nombre or 'Administrador'
        user.role = roles[Role.ADMIN]
        user.branch = branch
        user.is_active = True
        user.is_staff = True
        user.set_password(password)
        user.save()
        self._report(created, f'admin user {username}')

    def _report(self, created, label):
        if created:
            self.stdout.write(self.style.SUCCESS(f'✓ Created {label}'))
        else:
            self.stdout.write(f'  Already exists: {label}')
