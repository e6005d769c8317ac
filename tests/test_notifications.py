from trackroster.services import notifications


def _capture(monkeypatch):
    sent = {}

    def fake_send(to_email, subject, html_content, text_content=None):
        sent.update(to=to_email, subject=subject, html=html_content, text=text_content)
        return True

    monkeypatch.setattr(notifications, "send_email", fake_send)
    return sent


def test_verification_email_escapes_display_name(monkeypatch):
    sent = _capture(monkeypatch)
    name = '<a href="https://evil.test">Reset here</a>'

    assert notifications.send_verification_email("victim@x.com", "123456", full_name=name) is True
    assert "<a href" not in sent["html"]
    assert "Welcome, &lt;a href=&quot;https://evil.test&quot;&gt;Reset here&lt;/a&gt;!" in sent["html"]
    assert "123456" in sent["html"]
    # Plain text is not rendered as markup
    assert sent["text"].startswith(f"Welcome, {name}!")


def test_verification_email_without_name(monkeypatch):
    sent = _capture(monkeypatch)
    notifications.send_verification_email("new@x.com", "654321")
    assert sent["to"] == "new@x.com"
    assert "Welcome!" in sent["html"]
    assert "expires in 10 minutes" in sent["text"]


def test_no_transport_configured_returns_false():
    assert notifications.send_email("new@x.com", "Subject", "<p>hi</p>") is False
