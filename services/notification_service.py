"""
Notification service - in-app notification rows plus optional email
"""
import html
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_FRONTEND_URL = "https://agpcrm-lemon.vercel.app"


class NotificationService:
    """Writes notification rows through the executor and mails users when SMTP is configured."""

    def __init__(self, executor, config):
        self.db = executor
        self.smtp_host = config.get("SMTP_HOST") or ""
        self.smtp_port = int(config.get("SMTP_PORT") or 587)
        self.smtp_user = config.get("SMTP_USER") or ""
        self.smtp_pass = config.get("SMTP_PASS") or ""
        self.email_from = config.get("EMAIL_FROM") or "AGP CRM <noreply@agpcrm.com>"
        self.frontend_url = config.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL

        if self.smtp_host:
            logger.info(f"✅ Email service configured via {self.smtp_host}:{self.smtp_port}")
        else:
            logger.warning("⚠️ Email service not configured (SMTP_HOST unset)")

    @property
    def email_enabled(self):
        return bool(self.smtp_host)

    def create_notification(self, user_id, title, message, type="info", related_id=None, related_type=None):
        """Insert one notification row and return its id. QueryError propagates."""
        result = self.db.execute(
            """
            INSERT INTO notifications (user_id, title, message, type, related_id, related_type)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [user_id, title, message, type, related_id, related_type],
            id_column="id",
        )
        logger.info(f"✅ Notification created for user {user_id}: {title}")
        return result.inserted_id

    def send_email(self, to, subject, html_content, text_content=None):
        if not self.email_enabled:
            logger.warning("⚠️ Email service not configured, skipping email")
            return False
        if not to:
            return False

        message = MIMEMultipart("alternative")
        message["From"] = self.email_from
        message["To"] = to
        message["Subject"] = subject
        plain = text_content or re.sub(r"<[^>]+>", "", html_content)
        message.attach(MIMEText(plain, "plain", "utf-8"))
        message.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=15) as smtp:
                smtp.starttls()
                if self.smtp_user and self.smtp_pass:
                    smtp.login(self.smtp_user, self.smtp_pass)
                smtp.send_message(message)
            logger.info(f"✅ Email sent to {to}: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as err:
            logger.error(f"❌ Error sending email to {to}: {err}")
            return False

    def render_task_assignment_email(self, assignee_name, task_title, task_description, assigned_by_name):
        description = ""
        if task_description:
            description = (
                '<p style="color: #4b5563; margin: 0; line-height: 1.5;">'
                f"{html.escape(task_description)}</p>"
            )
        return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f9fafb;">
          <div style="background-color: white; padding: 30px; border-radius: 10px;">
            <div style="text-align: center; margin-bottom: 30px;">
              <h1 style="color: #1f2937; margin: 0; font-size: 24px;">AGP CRM</h1>
              <p style="color: #6b7280; margin: 5px 0 0 0;">Task Assignment Notification</p>
            </div>
            <h2 style="color: #1f2937; font-size: 20px;">Hi {html.escape(assignee_name)},</h2>
            <p style="color: #374151; line-height: 1.6;">
              You have been assigned a new task by <strong>{html.escape(assigned_by_name)}</strong>.
            </p>
            <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin-bottom: 25px;">
              <h3 style="color: #1f2937; margin: 0 0 10px 0; font-size: 18px;">{html.escape(task_title)}</h3>
              {description}
            </div>
            <div style="text-align: center; margin-bottom: 25px;">
              <a href="{self.frontend_url}/tasks"
                 style="background-color: #3b82f6; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">
                View Task
              </a>
            </div>
            <p style="color: #6b7280; font-size: 14px; text-align: center;">
              This is an automated notification from AGP CRM.<br>Please do not reply to this email.
            </p>
          </div>
        </div>
        """

    def send_task_assignment_notification(self, task, assignee, assigned_by):
        title = f"New Task Assigned: {task['title']}"
        message = f"{assigned_by['name']} assigned you a new task: \"{task['title']}\""
        try:
            self.create_notification(assignee["id"], title, message, "task", task["id"], "task")
        except Exception as err:
            logger.error(f"❌ Error sending task assignment notifications: {err}", exc_info=True)
            return False

        if assignee.get("email"):
            content = self.render_task_assignment_email(
                assignee["name"], task["title"], task.get("description"), assigned_by["name"]
            )
            self.send_email(assignee["email"], title, content)

        logger.info(f"✅ Task assignment notifications sent to {assignee['name']}")
        return True

    def send_task_update_notification(self, task, recipient, updated_by, update_type):
        if update_type == "status_change":
            title = f"Task Status Updated: {task['title']}"
            message = f"{updated_by['name']} updated task status to \"{task['status']}\""
        elif update_type == "reassigned":
            title = f"Task Reassigned: {task['title']}"
            message = f"{updated_by['name']} reassigned this task to you"
        else:
            title = f"Task Updated: {task['title']}"
            message = f"{updated_by['name']} updated the task"

        try:
            self.create_notification(recipient["id"], title, message, "task", task["id"], "task")
        except Exception as err:
            logger.error(f"❌ Error sending task update notification: {err}", exc_info=True)
            return False

        logger.info(f"✅ Task update notification sent to user {recipient['id']}")
        return True
