"""
Outgoing mail (sign-in codes and alert notices) through the Mailgun HTTP API.

Without MAILGUN_API_KEY and MAILGUN_DOMAIN nothing is sent; the message is
printed to the console so local development still works.
"""

import requests

from web3dash import config


def send_verification_code(email: str, code: str) -> bool:
    """
    Send verification code via Mailgun.

    Args:
        email: Recipient email address
        code: 6-digit verification code

    Returns:
        True if email sent successfully, False otherwise
    """
    if not config.MAILGUN_API_KEY or not config.MAILGUN_DOMAIN:
        print(f"[Email] Mailgun not configured. Verification code for {email}: {code}")
        return False

    return _send(
        email,
        "Your Web3 Dashboard sign-in code",
        (
            f"Your verification code is: {code}\n\n"
            f"This code will expire in 10 minutes.\n\n"
            f"If you didn't request this code, please ignore this email."
        ),
    )


def send_alert_notification(email: str, alert_name: str, detail: str) -> bool:
    """Send a triggered-alert notice. Returns False when mail is not configured."""
    if not config.MAILGUN_API_KEY or not config.MAILGUN_DOMAIN:
        print(f"[Email] Mailgun not configured. Alert '{alert_name}' for {email}: {detail}")
        return False

    return _send(email, f"Alert triggered: {alert_name}", detail)


def _send(email: str, subject: str, text: str) -> bool:
    try:
        response = requests.post(
            f"https://api.mailgun.net/v3/{config.MAILGUN_DOMAIN}/messages",
            auth=("api", config.MAILGUN_API_KEY),
            data={
                "from": config.MAILGUN_FROM_EMAIL,
                "to": email,
                "subject": subject,
                "text": text,
            },
            timeout=10
        )

        if response.status_code == 200:
            print(f"[Email] Sent '{subject}' to {email}")
            return True
        print(f"[Email] Failed to send to {email}: {response.status_code} {response.text}")
        return False

    except requests.RequestException as e:
        print(f"[Email] Error sending to {email}: {e}")
        return False
