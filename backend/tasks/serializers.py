from django.contrib.auth import get_user_model
from rest_framework import serializers

from backend.core.exceptions import InvalidDate, InvalidStatus, ResourceAlreadyExists, ResourceNotFound
from .models import Task

User = get_user_model()


class TaskSerializer(serializers.ModelSerializer):
    status = serializers.CharField(required=False)
    assigned_user_id = serializers.IntegerField(required=False, allow_null=True)
    assigned_user_name = serializers.CharField(source='assigned_user.full_name', read_only=True, default=None)
    created_by_name = serializers.CharField(source='created_by.full_name', read_only=True, default=None)
    project_id = serializers.IntegerField(source='project.id', read_only=True)
    project_name = serializers.CharField(source='project.name', read_only=True)
    priority_description = serializers.CharField(source='get_priority_display', read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)
    hours_variance = serializers.IntegerField(read_only=True)
    progress_percentage = serializers.IntegerField(min_value=0, max_value=100, required=False)
    priority = serializers.IntegerField(required=False)

    class Meta:
        model = Task
        fields = ['id', 'title', 'description', 'status', 'start_date_planned', 'end_date_planned',
                  'start_date_actual', 'end_date_actual', 'progress_percentage', 'priority',
                  'priority_description', 'estimated_hours', 'actual_hours', 'hours_variance', 'notes',
                  'labor_cost', 'material_cost', 'equipment_cost', 'total_cost', 'project_id', 'project_name',
                  'assigned_user_id', 'assigned_user_name', 'created_by_name', 'is_overdue',
                  'created_at', 'updated_at']
        read_only_fields = ['total_cost', 'created_at', 'updated_at']

    def validate_status(self, value):
        value = value.upper()
        if value not in Task.STATUS_VALUES:
            raise InvalidStatus(f"Invalid task status: {value}")
        return value

    def validate_priority(self, value):
        if value < 1 or value > 4:
            raise serializers.ValidationError('Priority must be between 1 and 4.')
        return value

    def validate_assigned_user_id(self, value):
        if value is None:
            return None
        user = User.objects.filter(pk=value).first()
        if user is None:
            raise ResourceNotFound(f"Assigned user with ID {value} was not found.")
        return user

    def validate(self, attrs):
        project = self.context['project']
        title = attrs.get('title')
        if title:
            duplicate = Task.objects.filter(project=project, title=title)
            if self.instance is not None:
                duplicate = duplicate.exclude(pk=self.instance.pk)
            if duplicate.exists():
                raise ResourceAlreadyExists('A task with this title already exists in this project.')

        for field in ('labor_cost', 'material_cost', 'equipment_cost'):
            if attrs.get(field) is not None and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Cost cannot be negative.'})

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

    def _apply(self, task, validated_data):
        assigned = validated_data.pop('assigned_user_id', serializers.empty)
        new_status = validated_data.pop('status', None)
        new_progress = validated_data.pop('progress_percentage', None)

        for attr, value in validated_data.items():
            setattr(task, attr, value)
        if assigned is not serializers.empty:
            task.assigned_user = assigned

        if new_status is not None:
            if new_status != task.status:
                task.apply_status(new_status)
            if new_progress is not None:
                # Both given: the status sets the dates, the progress is kept as sent
                task.progress_percentage = new_progress
        elif new_progress is not None and new_progress != task.progress_percentage:
            task.apply_progress(new_progress)
        return task

    def create(self, validated_data):
        task = Task(project=self.context['project'], created_by=validated_data.pop('created_by', None))
        self._apply(task, validated_data)
        task.save()
        return task

    def update(self, instance, validated_data):
        self._apply(instance, validated_data)
        instance.save()
        return instance


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_status(self, value):
        value = value.upper()
        if value not in Task.STATUS_VALUES:
            raise InvalidStatus(f"Invalid task status: {value}")
        return value
