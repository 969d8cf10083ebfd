"""Tests for template variable filling."""

from datetime import date

from crm_inbox.api.models import Contact
from crm_inbox.inbox.templates import render_template, template_variables


def test_render_with_contact_variables():
    contact = Contact(id="k1", name="Sara", phone="201234567890", email="sara@example.com")
    variables = template_variables(contact, company_name="Acme", order_id="BK-2", today=date(2024, 3, 1))
    text = render_template(
        "Hi {{name}}, order {{ order_id }} from {{Company_Name}} on {{date}}",
        variables,
    )
    assert text == "Hi Sara, order BK-2 from Acme on 2024-03-01"


def test_unknown_placeholders_are_kept():
    assert render_template("Hello {{nickname}}", {"name": "Sara"}) == "Hello {{nickname}}"


def test_no_contact_and_no_order():
    variables = template_variables(None, today=date(2024, 3, 1))
    assert variables == {"order_id": "N/A", "date": "2024-03-01"}
    assert render_template("{{name}} {{order_id}}", variables) == "{{name}} N/A"
