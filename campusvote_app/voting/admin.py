from django.contrib import admin

from voting.models import AuditLogEntry, Ballot, Candidate, Election, Organization, Position, Student


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    search_fields = ("name",)


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("student_id", "user", "department", "class_level", "enrollment_status")
    list_filter = ("enrollment_status", "class_level")
    search_fields = ("student_id", "user__username", "user__email", "department")
    filter_horizontal = ("organizations",)


class PositionInline(admin.TabularInline):
    model = Position
    extra = 0


@admin.register(Election)
class ElectionAdmin(admin.ModelAdmin):
    list_display = ("title", "status", "start_time", "end_time", "is_universal")
    list_filter = ("status", "type")
    search_fields = ("title",)
    inlines = (PositionInline,)


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("student", "position", "election", "approved")
    list_filter = ("approved", "election")
    raw_id_fields = ("student",)
    exclude = ("election",)


@admin.register(Ballot)
class BallotAdmin(admin.ModelAdmin):
    list_display = ("election", "voter", "voted_at")
    list_filter = ("election",)
    readonly_fields = ("election", "voter", "vote_data", "voted_at")

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = ("election", "event_type", "timestamp", "is_public")
    list_filter = ("event_type", "is_public")
    readonly_fields = ("election", "timestamp", "event_type", "payload", "is_public")
