"""
Template Rendering
==================

Substitutes ``{{PLACEHOLDER}}`` fields of an email template with values
taken from a resolved company / contact / app.
"""

from __future__ import annotations

from open_crm.domain.entities import TemplateEmail
from open_crm.domain.services.resolver import Resolution

PLACEHOLDERS: dict[str, str] = {
    "EMAIL": "Contact's raw email (example: user@example.com)",
    "FULL_EMAIL": 'Contact\'s full email (example: "Jon Snow" <jon.snow@example.com>)',
    "FULL_NAME": "Contact's full name (example: Henry Ford)",
    "NAME": "Alias to {{FULL_NAME}}",
    "FIRST_NAME": "Contact's first name",
    "LAST_NAME": "Contact's last name",
    "FRIENDLY_NAME": "Contact's first name, company name when unknown",
    "APP_NAME": "The appName",
    "APP_PLAN": "The plan the app is registered to",
    "COMPANY_NAME": "Name of the company",
    "COMPANY_URL": "Company's URL",
    "COMPANY_ADDRESS": "Company's address",
}


def template_values(resolution: Resolution) -> dict[str, str]:
    """Placeholder values available for ``resolution``; unknown ones are left as-is."""
    values: dict[str, str] = {}
    company, contact, app = resolution.company, resolution.contact, resolution.app

    if contact is not None:
        default_name = (company.name if company else None) or (app.app_name if app else None) or "user"
        name = contact.full_name or default_name
        values.update(
            EMAIL=contact.email,
            FULL_EMAIL=f'"{name}" <{contact.email}>',
            FULL_NAME=name,
            NAME=name,
            FRIENDLY_NAME=contact.first_name or default_name,
            FIRST_NAME=contact.first_name or "",
            LAST_NAME=contact.last_name or "",
        )
    if app is not None:
        values.update(APP_NAME=app.app_name, APP_PLAN=app.plan)
    if company is not None:
        values.update(
            COMPANY_NAME=company.name,
            COMPANY_URL=company.url or "",
            COMPANY_ADDRESS=company.address or "",
        )
    return values


def render_text(text: str, resolution: Resolution) -> str:
    for key, value in template_values(resolution).items():
        text = text.replace("{{" + key + "}}", value)
    return text


def render_template(template: TemplateEmail, resolution: Resolution) -> TemplateEmail:
    return TemplateEmail(
        subject=render_text(template.subject, resolution),
        content=render_text(template.content, resolution),
    )
