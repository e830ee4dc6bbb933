"""
Builds the outgoing payslip email.

Structure of the generated message:

    multipart/mixed
      multipart/alternative
        text/plain
        multipart/related
          text/html            (references images as cid:logo, cid:icon, ...)
          image/png  x4        (Content-ID: <logo>, <icon>, <instagram>, <linkedin>)
      application/pdf          (Payslip-<sanitized name>.pdf)

The recipient name is the only caller-supplied value in the HTML and is
always escaped. The attachment filename is derived from the name, so it is
sanitized and length-capped.
"""

import html
import re
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from pathlib import Path

from payslip_mailer.models.send_request import SendRequest

MAX_FILENAME_PART_LENGTH = 50
_FALLBACK_FILENAME_PART = "recipient"

# Anything that is not a word character, dash or dot becomes "_". This covers
# path separators, shell metacharacters, quotes and control characters.
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w\-.]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


@dataclass(frozen=True)
class InlineImage:
    cid: str
    filename: str


INLINE_IMAGES = (
    InlineImage(cid="logo", filename="logo.png"),
    InlineImage(cid="icon", filename="icon.png"),
    InlineImage(cid="instagram", filename="instagram.png"),
    InlineImage(cid="linkedin", filename="linkedin.png"),
)


@dataclass(frozen=True)
class Branding:
    """Fixed signature block content."""
    company: str = "Ecommerce Steem"
    signer: str = "Asad Niaz"
    meeting_url: str = "https://calendly.com/contact-ecommercesteem"
    website_url: str = "https://ecommercesteem.com"
    website_label: str = "ecommercesteem.com"
    contact_email: str = "asad@ecommercesteem.com"
    phone: str = "+44 7915391870"
    facebook_url: str = "https://www.facebook.com/ecommercesteem0"
    instagram_url: str = "https://www.instagram.com/ecommercesteem/"
    linkedin_url: str = "https://www.linkedin.com/company/ecommercesteem-ltd/"


DEFAULT_BRANDING = Branding()

_HTML_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; color: #000;">
  <p>Hi {name},</p>
  <p>Please find your salary slip attached.</p>

  <br/>
  <p>Best regards,<br/>{signer}</p>

  <div style="margin-top: 10px;">
    <img src="cid:logo" alt="{company} Logo" style="width: 100px;"/>
  </div>

  <div style="font-size: 14px; margin-top: 10px;">
    <strong>{company}</strong><br/>
    <a href="{meeting_url}" style="color: #0066cc; text-decoration: none;">Schedule a Meeting</a><br/>
    \U0001F310 Website: <a href="{website_url}" style="color: #0066cc;">{website_label}</a><br/>
    \U0001F4E7 Email: <a href="mailto:{contact_email}" style="color: #0066cc;">{contact_email}</a><br/>
    \U0001F4DE Phone: {phone}
  </div>

  <div style="margin-top: 10px;">
    <p>Stay connected:</p>
    <a href="{facebook_url}"><img src="cid:icon" alt="Facebook" /></a>
    <a href="{instagram_url}"><img src="cid:instagram" alt="Instagram" /></a>
    <a href="{linkedin_url}"><img src="cid:linkedin" alt="LinkedIn" /></a>
  </div>
</div>
"""

_TEXT_TEMPLATE = """\
Hi {name},

Please find your salary slip attached.

Best regards,
{signer}

{company}
Schedule a Meeting: {meeting_url}
Website: {website_url}
Email: {contact_email}
Phone: {phone}
"""


def escape_name(name: str) -> str:
    return html.escape(name, quote=True)


def sanitize_filename_part(name: str, max_length: int = MAX_FILENAME_PART_LENGTH) -> str:
    """Reduce a person's name to something safe to use inside a filename."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name.strip())
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    # No leading dots: avoids hidden files and "..".
    cleaned = cleaned.strip("._")[:max_length].rstrip("._")
    return cleaned or _FALLBACK_FILENAME_PART


def attachment_filename(name: str) -> str:
    return f"Payslip-{sanitize_filename_part(name)}.pdf"


def _branding_fields(branding: Branding) -> dict:
    return {
        "signer": branding.signer,
        "company": branding.company,
        "meeting_url": branding.meeting_url,
        "website_url": branding.website_url,
        "website_label": branding.website_label,
        "contact_email": branding.contact_email,
        "phone": branding.phone,
        "facebook_url": branding.facebook_url,
        "instagram_url": branding.instagram_url,
        "linkedin_url": branding.linkedin_url,
    }


def render_html(name: str, branding: Branding = DEFAULT_BRANDING) -> str:
    return _HTML_TEMPLATE.format(name=escape_name(name), **_branding_fields(branding))


def render_text(name: str, branding: Branding = DEFAULT_BRANDING) -> str:
    return _TEXT_TEMPLATE.format(name=name, **_branding_fields(branding))


def _sender_domain(sender: str) -> str:
    _, _, domain = sender.rpartition("@")
    return domain or "localhost"


def build_message(
    request: SendRequest,
    sender: str,
    sender_name: str,
    subject: str,
    static_dir: Path,
    branding: Branding = DEFAULT_BRANDING,
) -> EmailMessage:
    """
    Assemble the payslip email for ``request``.

    Raises:
        FileNotFoundError: an inline image is missing from ``static_dir``.
    """
    message = EmailMessage()
    message["From"] = formataddr((sender_name, sender))
    message["To"] = request.recipient_email
    message["Subject"] = subject
    message["Date"] = formatdate(localtime=True)
    message["Message-ID"] = make_msgid(domain=_sender_domain(sender))

    message.set_content(render_text(request.recipient_name, branding))
    message.add_alternative(render_html(request.recipient_name, branding), subtype="html")

    html_part = message.get_payload()[1]
    for image in INLINE_IMAGES:
        data = (Path(static_dir) / image.filename).read_bytes()
        html_part.add_related(
            data,
            maintype="image",
            subtype="png",
            cid=f"<{image.cid}>",
            filename=image.filename,
            disposition="inline",
        )

    message.add_attachment(
        request.attachment_bytes,
        maintype="application",
        subtype="pdf",
        filename=attachment_filename(request.recipient_name),
    )
    return message
