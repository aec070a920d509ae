from rest_framework import serializers
from .models import User, Role


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ['id', 'name', 'description']


class UserSerializer(serializers.ModelSerializer):
    """Public user profile used by the login and ``me`` endpoints"""
    rol = serializers.CharField(source='role_name', read_only=True)
    sucursal = serializers.CharField(source='branch.name', read_only=True, default=None)
    sucursal_id = serializers.IntegerField(source='branch_id', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'nombre', 'email', 'username', 'rol', 'sucursal', 'sucursal_id', 'mfa_enabled']


class AdminUserSerializer(serializers.ModelSerializer):
    rol = serializers.CharField(source='role_name', read_only=True)
    rol_id = serializers.IntegerField(source='role_id', read_only=True)
    sucursal = serializers.CharField(source='branch.name', read_only=True, default=None)
    sucursal_id = serializers.IntegerField(source='branch_id', read_only=True)
    activo = serializers.BooleanField(source='is_active', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'nombre', 'username', 'email', 'rol', 'rol_id', 'sucursal', 'sucursal_id',
                  'activo', 'mfa_enabled', 'lock_until', 'created_at']


class UserInviteSerializer(serializers.Serializer):
    nombre = serializers.CharField(max_length=200)
    email = serializers.EmailField()
    rolId = serializers.IntegerField()
    sucursalId = serializers.IntegerField(required=False, allow_null=True)
    username = serializers.RegexField(r'^[A-Za-z0-9._-]+$', max_length=150, required=False, allow_blank=True,
                                      error_messages={'invalid': 'El usuario solo permite letras, numeros, punto, guion y guion bajo.'})
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate_username(self, value):
        return (value or '').strip().lower()

    def validate_password(self, value):
        value = (value or '').strip()
        if value and len(value) < 8:
            raise serializers.ValidationError('La contrasena debe tener minimo 8 caracteres.')
        return value


class UserUpdateSerializer(serializers.Serializer):
    nombre = serializers.CharField(max_length=200)
    email = serializers.EmailField()
    rolId = serializers.IntegerField()
    sucursalId = serializers.IntegerField(required=False, allow_null=True)
