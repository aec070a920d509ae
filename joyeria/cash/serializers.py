from rest_framework import serializers
from .models import CashClosure


class CashClosureSerializer(serializers.ModelSerializer):
    usuario = serializers.SerializerMethodField()
    sucursal = serializers.SerializerMethodField()
    estado = serializers.SerializerMethodField()

    class Meta:
        model = CashClosure
        fields = ['id', 'branch', 'user', 'usuario', 'sucursal', 'estado', 'period_start', 'period_end',
                  'opening_amount', 'total_cash', 'total_transfer', 'total_card', 'total_general',
                  'reported_closing_amount', 'difference', 'closed_at', 'notes', 'created_at']

    def get_usuario(self, obj):
        return {'nombre': obj.user.display_name(), 'email': obj.user.email}

    def get_sucursal(self, obj):
        return {'nombre': obj.branch.name, 'codigo': obj.branch.code}

    def get_estado(self, obj):
        return 'ABIERTA' if obj.is_open else 'CERRADA'
