from django.contrib import admin
from .models import LateReturnFee, RecurrenceRule, Reservation, VehicleSchedule

@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = ['id', 'vehicle_id', 'owner_id', 'status', 'start_at', 'end_at', 'priority_tier']
    list_filter = ['status', 'priority_tier', 'is_emergency']

@admin.register(RecurrenceRule)
class RecurrenceRuleAdmin(admin.ModelAdmin):
    list_display = ['id', 'vehicle_id', 'owner_id', 'pattern', 'status', 'generated_until']
    list_filter = ['pattern', 'status']

@admin.register(LateReturnFee)
class LateReturnFeeAdmin(admin.ModelAdmin):
    list_display = ['id', 'reservation', 'late_minutes', 'fee_amount', 'status']
    list_filter = ['status']

@admin.register(VehicleSchedule)
class VehicleScheduleAdmin(admin.ModelAdmin):
    list_display = ['vehicle_id', 'group_id', 'last_committed_at']
