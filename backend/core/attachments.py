"""Attachment storage shared by projects and tasks"""
import logging
import mimetypes

from django.db import transaction
from django.http import FileResponse

from .exceptions import ResourceNotFound
from .models import Attachment
from .utils import validate_upload

logger = logging.getLogger('backend.core')


def store_attachment(uploaded_file, entity_type, entity_id, user):
    original_filename = validate_upload(uploaded_file)
    content_type = getattr(uploaded_file, 'content_type', None) or mimetypes.guess_type(original_filename)[0]

    attachment = Attachment(
        original_filename=original_filename,
        content_type=content_type,
        file_size=uploaded_file.size,
        entity_type=entity_type,
        entity_id=entity_id,
        uploaded_by=user,
    )
    attachment.file.save(original_filename, uploaded_file, save=False)
    attachment.save()
    logger.info(f"File saved: {original_filename} for {entity_type} {entity_id}")
    return attachment


def attachments_for(entity_type, entity_id):
    return Attachment.objects.filter(entity_type=entity_type, entity_id=entity_id).select_related('uploaded_by')


def get_attachment(attachment_id, entity_type=None):
    queryset = Attachment.objects.all()
    if entity_type:
        queryset = queryset.filter(entity_type=entity_type)
    attachment = queryset.filter(pk=attachment_id).first()
    if attachment is None:
        raise ResourceNotFound(f"Attachment not found with ID: {attachment_id}")
    return attachment


def _remove_stored_file(storage, name):
    if storage.exists(name):
        storage.delete(name)
        logger.info(f"Stored file removed: {name}")


def delete_attachment(attachment):
    """Delete the row now; the stored file goes only once the surrounding transaction commits"""
    attachment_id = attachment.id
    storage, name = attachment.file.storage, attachment.file.name
    attachment.delete()
    logger.info(f"Attachment record removed: ID {attachment_id}")
    if name:
        transaction.on_commit(lambda: _remove_stored_file(storage, name))


def download_response(attachment):
    if not attachment.file or not attachment.file.storage.exists(attachment.file.name):
        raise ResourceNotFound(f"File not found or unreadable: {attachment.original_filename}")
    return FileResponse(
        attachment.file.open('rb'),
        as_attachment=True,
        filename=attachment.original_filename,
        content_type=attachment.content_type or 'application/octet-stream',
    )
