"""
Fire-and-forget e-mail notifications.

Messages are rendered in the calling thread (so no ORM access happens in the
background) and handed to a daemon thread for SMTP delivery. Delivery errors
are logged and never reach the caller.
"""
import logging
import threading

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger('backend.notifications')

FOOTER = "Access the system for more details."


def _send_email(to, subject, message):
    try:
        send_mail(subject, message, settings.SGPC_MAIL_FROM, [to], fail_silently=False)
        logger.info(f"Email sent to: {to}")
    except Exception as e:
        logger.error(f"Error sending email to {to}: {e}")


def _deliver(recipients, subject, message):
    for to in recipients:
        _send_email(to, subject, message)


def dispatch(recipients, subject, message):
    if not settings.SGPC_NOTIFICATIONS_ENABLED:
        logger.info("Notifications disabled")
        return
    recipients = [r for r in recipients if r]
    if not recipients:
        return
    if settings.SGPC_NOTIFICATIONS_SYNC:
        _deliver(recipients, subject, message)
        return
    thread = threading.Thread(target=_deliver, args=(recipients, subject, message))
    thread.daemon = True
    thread.start()


def notify_new_material_request(material_request, approvers):
    project = material_request.project
    subject = f"New Material Request - {project.name}"
    message = (
        "A new material request was created:\n\n"
        f"Project: {project.name}\n"
        f"Requester: {material_request.requester.full_name}\n"
        f"Needed by: {material_request.needed_date}\n"
        f"Status: {material_request.status}\n\n"
        f"{FOOTER}"
    )
    dispatch([user.email for user in approvers], subject, message)


def notify_material_request_status_changed(material_request):
    project = material_request.project
    subject = f"Request {material_request.status} - {project.name}"
    message = (
        f"Your material request was {material_request.get_status_display().lower()}:\n\n"
        f"Project: {project.name}\n"
        f"Status: {material_request.status}\n"
        f"Needed by: {material_request.needed_date}\n"
    )
    if material_request.rejection_reason:
        message += f"Reason: {material_request.rejection_reason}\n"
    message += f"\n{FOOTER}"
    dispatch([material_request.requester.email], subject, message)


def notify_task_assigned(task, assignee):
    subject = f"New Task Assigned - {task.title}"
    message = (
        "A new task was assigned to you:\n\n"
        f"Project: {task.project.name}\n"
        f"Task: {task.title}\n"
        f"Priority: {task.get_priority_display()}\n\n"
        f"{FOOTER}"
    )
    dispatch([assignee.email], subject, message)


def notify_task_overdue(task):
    if task.assigned_user is None:
        return
    subject = f"Overdue Task - {task.title}"
    message = (
        "The following task is overdue:\n\n"
        f"Project: {task.project.name}\n"
        f"Task: {task.title}\n"
        f"Planned end date: {task.end_date_planned}\n"
        f"Status: {task.status}\n\n"
        "Please update the task status in the system."
    )
    dispatch([task.assigned_user.email], subject, message)


def notify_budget_overrun(project, manager):
    subject = f"Budget Alert - {project.name}"
    message = (
        "The project has exceeded its budget:\n\n"
        f"Project: {project.name}\n"
        f"Total budget: R$ {project.total_budget:.2f}\n"
        f"Realized cost: R$ {project.realized_cost:.2f}\n"
        f"Status: {project.status}\n\n"
        "Check the project expenses in the system."
    )
    dispatch([manager.email], subject, message)


def send_password_reset_email(email, token):
    subject = "Password Recovery - SGPC"
    message = (
        "You requested a password recovery.\n\n"
        "Use the token below to reset your password:\n\n"
        f"Token: {token}\n\n"
        "This token is valid for 24 hours.\n\n"
        "If you did not request this recovery, ignore this email.\n\n"
        "SGPC Team"
    )
    dispatch([email], subject, message)
