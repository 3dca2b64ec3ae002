from django.contrib.auth.models import Group
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .exceptions import ResourceAlreadyExists
from .models import User, AuditLog, Attachment, ROLE_NAMES


class UserSerializer(serializers.ModelSerializer):
    roles = serializers.SerializerMethodField()
    role = serializers.CharField(source='primary_role', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'phone', 'hourly_rate', 'is_active', 'roles', 'role', 'created_at', 'updated_at']
        read_only_fields = ['is_active', 'created_at', 'updated_at']

    def get_roles(self, obj):
        return sorted(obj.role_names)


class UserCreateSerializer(serializers.ModelSerializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, validators=[validate_password])
    role_name = serializers.CharField(write_only=True, required=False)

    class Meta:
        model = User
        fields = ['full_name', 'email', 'phone', 'password', 'hourly_rate', 'role_name']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise ResourceAlreadyExists(f"Email already registered: {value}")
        return value.lower()

    def validate_role_name(self, value):
        value = value.upper()
        if value not in ROLE_NAMES:
            raise serializers.ValidationError(f"Role not found: {value}")
        return value

    def validate(self, attrs):
        if self.context.get('require_role') and not attrs.get('role_name'):
            raise serializers.ValidationError({'role_name': 'This field is required.'})
        return attrs

    def create(self, validated_data):
        role_name = validated_data.pop('role_name', None) or self.context.get('default_role')
        password = validated_data.pop('password')
        user = User.objects.create_user(password=password, is_active=True, **validated_data)
        if role_name:
            group, _ = Group.objects.get_or_create(name=role_name)
            user.groups.add(group)
        return user


class UserUpdateSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(required=False)
    password = serializers.CharField(write_only=True, required=False, validators=[validate_password])
    role_name = serializers.CharField(write_only=True, required=False)

    class Meta:
        model = User
        fields = ['full_name', 'email', 'phone', 'hourly_rate', 'password', 'role_name']

    def validate_email(self, value):
        duplicate = User.objects.filter(email__iexact=value).exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ResourceAlreadyExists(f"Email already registered: {value}")
        return value.lower()

    def validate_role_name(self, value):
        value = value.upper()
        if value not in ROLE_NAMES:
            raise serializers.ValidationError(f"Role not found: {value}")
        return value

    def update(self, instance, validated_data):
        role_name = validated_data.pop('role_name', None)
        password = validated_data.pop('password', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if 'email' in validated_data:
            instance.username = validated_data['email']
        if password:
            instance.set_password(password)
        instance.save()
        if role_name:
            group, _ = Group.objects.get_or_create(name=role_name)
            instance.groups.set([group])
        return instance


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class ResetPasswordSerializer(serializers.Serializer):
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, validators=[validate_password])


class UserBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'full_name', 'email']


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserBriefSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'user_email', 'action', 'model_name', 'object_id', 'object_name',
                  'changes', 'ip_address', 'created_at']


class AttachmentSerializer(serializers.ModelSerializer):
    uploaded_by = UserBriefSerializer(read_only=True)
    filename = serializers.CharField(read_only=True)

    class Meta:
        model = Attachment
        fields = ['id', 'filename', 'original_filename', 'content_type', 'file_size',
                  'entity_type', 'entity_id', 'uploaded_by', 'created_at']
