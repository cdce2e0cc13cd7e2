"""
Amazon SES Email Service
"""
import boto3
import logging
from typing import Optional
from botocore.exceptions import ClientError, BotoCoreError
from jinja2 import Environment, BaseLoader, TemplateNotFound, select_autoescape
from helporbit.core.config import settings

logger = logging.getLogger(__name__)


_LAYOUT_STYLE = '''
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 480px; margin: 0 auto; padding: 24px; }
        .heading { font-size: 24px; font-weight: 600; margin-bottom: 16px; }
        .button { display: inline-block; background: {{ primary_color }}; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; margin: 20px 0; font-weight: bold; }
        .muted { font-size: 14px; color: #666; }
'''


class TemplateLoader(BaseLoader):
    """Simple template loader for email templates"""

    def __init__(self):
        self.templates = {
            'email_verification': '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Verify your email address - {{ project_name }}</title>
    <style>''' + _LAYOUT_STYLE + '''</style>
</head>
<body>
    <p class="heading">Verify your email address</p>
    <p>Hi {{ user_name }},</p>
    <p>Thanks for signing up for {{ project_name }}. Please confirm your email address by clicking the button below:</p>
    <p style="text-align: center;"><a href="{{ verification_url }}" class="button">Verify Email</a></p>
    <p class="muted">If the button doesn't work, copy and paste this URL into your browser:<br>{{ verification_url }}</p>
    <p class="muted">This link will expire in {{ expires_in }}. If you didn't create an account, you can ignore this email.</p>
    <p>Best,<br>The {{ project_name }} Team</p>
</body>
</html>
            ''',
            'password_reset': '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Reset your password - {{ project_name }}</title>
    <style>''' + _LAYOUT_STYLE + '''</style>
</head>
<body>
    <p class="heading">Reset your password</p>
    <p>Hi {{ user_name }},</p>
    <p>We received a request to reset the password for your {{ project_name }} account. Click the button below to choose a new one:</p>
    <p style="text-align: center;"><a href="{{ reset_url }}" class="button">Reset Password</a></p>
    <p class="muted">This link will expire in {{ expires_in }}. If you didn't request a password reset, your password will remain unchanged.</p>
    <p>Best,<br>The {{ project_name }} Team</p>
</body>
</html>
            ''',
            'organization_invitation': '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>You're invited to join {{ organization_name }}</title>
    <style>''' + _LAYOUT_STYLE + '''</style>
</head>
<body>
    <p class="heading">You're Invited to Join {{ organization_name }}</p>
    <p>Hi {{ invitee_name or "there" }},</p>
    <p>{{ inviter_name }} has invited you to join <strong>{{ organization_name }}</strong> as a <strong>{{ role }}</strong>. Accept the invitation to start collaborating with your team.</p>
    <p style="text-align: center;"><a href="{{ invitation_url }}" class="button">Accept Invitation</a></p>
    <p class="muted">If you don't want to join this organization, you can safely ignore this email.</p>
    <p class="muted">For security reasons, this invitation will expire in {{ expires_in }}.</p>
    <p>Best,<br>The {{ project_name }} Team</p>
</body>
</html>
            ''',
        }

    def get_source(self, environment, template):
        if template not in self.templates:
            raise TemplateNotFound(template)
        source = self.templates[template]
        return source, None, lambda: True


def build_invitation_url(organization_slug: str, invitation_id: str, base_url: Optional[str] = None) -> str:
    """Deep link to the accept-invitation page"""
    base_url = (base_url or settings.APP_URL).rstrip("/")
    return f"{base_url}/org/{organization_slug}/accept-invitation/{invitation_id}"


class EmailService:
    """Amazon SES email service for sending transactional emails"""

    def __init__(self):
        """Initialize SES client"""
        self.ses_client = None
        self.env = Environment(loader=TemplateLoader(), autoescape=select_autoescape(default=True))

        # Only initialize if we have AWS credentials
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            try:
                self.ses_client = boto3.client(
                    'ses',
                    region_name=settings.SES_REGION,
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY
                )
                logger.info(f"SES client initialized for region: {settings.SES_REGION}")
            except (BotoCoreError, ClientError) as e:
                logger.error(f"Failed to initialize SES client: {str(e)}")
                self.ses_client = None
        else:
            logger.warning("AWS credentials not configured. Email service disabled.")

    def render(self, template_name: str, **context) -> str:
        context.setdefault("project_name", settings.PROJECT_NAME)
        context.setdefault("primary_color", "#4f46e5")
        return self.env.get_template(template_name).render(**context)

    def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> bool:
        """
        Send one email through SES.

        Never raises: delivery problems are logged and reported as False so
        callers can carry on without the email.
        """
        if not self.ses_client:
            logger.error("SES client not initialized. Cannot send email.")
            return False
        if not settings.SES_SENDER_EMAIL:
            logger.error("SES_SENDER_EMAIL not configured. Cannot send email.")
            return False

        body = {'Html': {'Data': html, 'Charset': 'UTF-8'}}
        if text_body:
            body['Text'] = {'Data': text_body, 'Charset': 'UTF-8'}

        try:
            response = self.ses_client.send_email(
                Source=settings.SES_SENDER_EMAIL,
                Destination={'ToAddresses': [to]},
                Message={'Subject': {'Data': subject, 'Charset': 'UTF-8'}, 'Body': body},
                ReplyToAddresses=[reply_to] if reply_to else [],
            )
        except ClientError as e:
            error = e.response['Error']
            logger.error(f"AWS SES ClientError [{error['Code']}] sending to {to}: {error['Message']}")
            return False
        except BotoCoreError as e:
            logger.error(f"AWS SES BotoCoreError sending to {to}: {str(e)}")
            return False

        logger.info(f"Email '{subject}' sent to {to}. MessageId: {response['MessageId']}")
        return True

    def send_verification_email(
        self,
        user_email: str,
        user_name: str,
        verification_token: str,
        base_url: Optional[str] = None
    ) -> bool:
        """
        Send email verification email

        Args:
            user_email: User's email address
            user_name: User's display name
            verification_token: Email verification token
            base_url: Base URL for verification link

        Returns:
            bool: True if email was sent successfully
        """
        base_url = (base_url or settings.APP_URL).rstrip("/")
        verification_url = f"{base_url}/email-verified?token={verification_token}"

        html_content = self.render(
            'email_verification',
            user_name=user_name,
            verification_url=verification_url,
            expires_in=f"{settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours",
        )

        return self.send_email(
            to=user_email,
            subject="Verify your email address",
            html=html_content
        )

    def send_password_reset_email(
        self,
        user_email: str,
        user_name: str,
        reset_token: str,
        organization_slug: Optional[str] = None,
        base_url: Optional[str] = None
    ) -> bool:
        """
        Send password reset email

        The reset page lives under the organization when the request came
        from an organization login page.
        """
        base_url = (base_url or settings.APP_URL).rstrip("/")
        if organization_slug:
            reset_url = f"{base_url}/org/{organization_slug}/reset-password?token={reset_token}"
        else:
            reset_url = f"{base_url}/reset-password?token={reset_token}"

        html_content = self.render(
            'password_reset',
            user_name=user_name,
            reset_url=reset_url,
            expires_in=f"{settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes",
        )

        return self.send_email(
            to=user_email,
            subject=f"Reset your password - {settings.PROJECT_NAME}",
            html=html_content
        )

    def send_invitation_email(
        self,
        to_email: str,
        organization_name: str,
        organization_slug: str,
        invitation_id: str,
        inviter_name: str,
        role: str,
        invitee_name: Optional[str] = None,
        primary_color: Optional[str] = None,
    ) -> bool:
        """
        Send an organization invitation with a deep link to the accept page.

        Returns:
            bool: True if email was sent successfully
        """
        invitation_url = build_invitation_url(organization_slug, invitation_id)

        html_content = self.render(
            'organization_invitation',
            invitee_name=invitee_name,
            inviter_name=inviter_name,
            organization_name=organization_name,
            role=role,
            invitation_url=invitation_url,
            expires_in=f"{settings.INVITATION_EXPIRE_HOURS} hours",
            primary_color=primary_color or "#4f46e5",
        )

        return self.send_email(
            to=to_email,
            subject=f"You're invited to join {organization_name} on {settings.PROJECT_NAME}",
            html=html_content
        )


# Singleton instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton"""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
