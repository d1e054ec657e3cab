import pytest

from civic_validation import find_duplicates, password_strength, report_errors, signup_errors, validate_email


@pytest.mark.parametrize("email,ok", [
    ("ana@example.org", True),
    ("first.last+civic@city.gov.uk", True),
    ("no-at-sign.org", False),
    ("", False),
    (None, False),
])
def test_validate_email(email, ok):
    assert validate_email(email) is ok


def test_password_strength():
    assert password_strength("S3cret!pw") == (5, [])
    score, suggestions = password_strength("abc")
    assert score == 1
    assert "At least 8 characters" in suggestions


def test_signup_errors():
    assert signup_errors("a@b.org", "a@b.org", "S3cret!pw", "S3cret!pw") == []
    errors = signup_errors("a@b.org", "x@b.org", "weak", "other")
    assert "Emails do not match" in errors
    assert "Passwords do not match" in errors
    assert any(e.startswith("Weak password") for e in errors)


def test_report_errors():
    assert report_errors("Hole", "Deep", "Main St 1") == []
    assert report_errors("Hole", "Deep", "Main St 1", 52.5, 13.4) == []
    assert report_errors(" ", "Deep", "Main St 1") == ["Please fill required fields: title, description, address"]
    assert report_errors("Hole", "Deep", "Main St 1", 52.5, None) == ["Provide both latitude and longitude, or neither"]
    assert report_errors("Hole", "Deep", "Main St 1", 91.0, 0.0) == ["Latitude must be between -90 and 90"]


def test_find_duplicates_matches_title_and_address_ignoring_case():
    reports = [
        {"id": "r1", "title": "Broken light", "address": "Elm St 2"},
        {"id": "r2", "title": "Broken light", "address": "Oak St 9"},
        {"id": "r3", "title": None, "address": None},
    ]
    assert [r["id"] for r in find_duplicates(reports, " broken LIGHT ", "elm st 2")] == ["r1"]
    assert find_duplicates(reports, "Pothole", "Elm St 2") == []
    assert find_duplicates([], "Broken light", "Elm St 2") == []
