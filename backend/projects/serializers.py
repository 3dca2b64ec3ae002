from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import serializers

from backend.core.exceptions import InvalidDate, InvalidStatus, ResourceAlreadyExists, ResourceNotFound
from backend.core.serializers import UserBriefSerializer
from .models import Project

User = get_user_model()


class TeamMemberSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source='primary_role', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'phone', 'role', 'is_active']


class ProjectSummarySerializer(serializers.ModelSerializer):
    progress_percentage = serializers.SerializerMethodField()
    team_size = serializers.SerializerMethodField()
    created_by_name = serializers.CharField(source='created_by.full_name', read_only=True, default=None)
    is_delayed = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = ['id', 'name', 'client', 'status', 'start_date_planned', 'end_date_planned',
                  'total_budget', 'progress_percentage', 'team_size', 'created_by_name', 'is_delayed']

    def get_progress_percentage(self, obj):
        return int(obj.progress_percentage or 0)

    def get_team_size(self, obj):
        return obj.team_members.count()

    def get_is_delayed(self, obj):
        return obj.is_delayed()


class ProjectSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=255)
    status = serializers.CharField(required=False)
    created_by = UserBriefSerializer(read_only=True)
    team_members = TeamMemberSerializer(many=True, read_only=True)
    team_member_ids = serializers.ListField(child=serializers.IntegerField(), write_only=True, required=False)
    budget_variance = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    is_delayed = serializers.SerializerMethodField()
    task_count = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = ['id', 'name', 'description', 'start_date_planned', 'end_date_planned',
                  'start_date_actual', 'end_date_actual', 'total_budget', 'realized_cost',
                  'budget_variance', 'progress_percentage', 'client', 'status', 'created_by',
                  'team_members', 'team_member_ids', 'is_delayed', 'task_count', 'created_at', 'updated_at']
        read_only_fields = ['realized_cost', 'progress_percentage', 'created_at', 'updated_at']

    def get_is_delayed(self, obj):
        return obj.is_delayed()

    def get_task_count(self, obj):
        return obj.tasks.count()

    def validate_name(self, value):
        duplicate = Project.objects.filter(name=value)
        if self.instance is not None:
            duplicate = duplicate.exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ResourceAlreadyExists(f"A project named '{value}' already exists.")
        return value

    def validate_status(self, value):
        value = value.upper()
        if value not in Project.STATUS_VALUES:
            raise InvalidStatus(f"Invalid project status: {value}")
        return value

    def validate_total_budget(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError('Budget cannot be negative.')
        return value

    def validate_team_member_ids(self, value):
        users = list(User.objects.filter(pk__in=value))
        missing = set(value) - {user.pk for user in users}
        if missing:
            raise ResourceNotFound(f"User with ID {sorted(missing)[0]} was not found.")
        return users

    def validate(self, attrs):
        today = timezone.localdate()
        creating = self.instance is None

        if creating:
            if attrs.get('start_date_planned') and attrs['start_date_planned'] < today:
                raise InvalidDate('Planned start date cannot be before today.')
            if attrs.get('start_date_actual') and attrs['start_date_actual'] < today:
                raise InvalidDate('Actual start date cannot be before today.')

        def current(field):
            if field in attrs:
                return attrs[field]
            return getattr(self.instance, field, None)

        start_planned, end_planned = current('start_date_planned'), current('end_date_planned')
        if start_planned and end_planned and end_planned < start_planned:
            raise InvalidDate('Planned end date cannot be before the planned start date.')
        start_actual, end_actual = current('start_date_actual'), current('end_date_actual')
        if start_actual and end_actual and end_actual < start_actual:
            raise InvalidDate('Actual end date cannot be before the actual start date.')
        return attrs

    def create(self, validated_data):
        team_members = validated_data.pop('team_member_ids', [])
        project = Project.objects.create(**validated_data)
        project.team_members.set(team_members)
        if project.created_by:
            project.team_members.add(project.created_by)
        return project

    def update(self, instance, validated_data):
        team_members = validated_data.pop('team_member_ids', None)
        for attr, value in validated_data.items():
            if value is not None:
                setattr(instance, attr, value)
        instance.save()
        if team_members is not None:
            instance.team_members.set(team_members)
        return instance
