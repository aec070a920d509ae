from rest_framework import serializers
from .models import PettyCashDelivery, PettyCashExchange


def _person(user):
    if user is None:
        return None
    return {'id': user.pk, 'nombre': user.display_name(), 'email': user.email}


class PettyCashEntrySerializer(serializers.ModelSerializer):
    cajera = serializers.SerializerMethodField()
    autorizado_por = serializers.SerializerMethodField()
    sucursal = serializers.SerializerMethodField()

    class Meta:
        fields = ['id', 'branch', 'cashier', 'authorized_by', 'cajera', 'autorizado_por', 'sucursal',
                  'amount', 'reason', 'date', 'created_at']

    def get_cajera(self, obj):
        return _person(obj.cashier)

    def get_autorizado_por(self, obj):
        return _person(obj.authorized_by)

    def get_sucursal(self, obj):
        return {'id': obj.branch.pk, 'nombre': obj.branch.name, 'codigo': obj.branch.code}


class PettyCashDeliverySerializer(PettyCashEntrySerializer):
    class Meta(PettyCashEntrySerializer.Meta):
        model = PettyCashDelivery


class PettyCashExchangeSerializer(PettyCashEntrySerializer):
    class Meta(PettyCashEntrySerializer.Meta):
        model = PettyCashExchange
