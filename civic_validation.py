# civic_validation.py
# Form checks run before anything is sent to the backend.

import re
from typing import List, Optional


def validate_email(email: str) -> bool:
    # basic but practical email regex
    if not email or not isinstance(email, str):
        return False
    pattern = r"^[\w\.+-]+@[\w\.-]+\.\w+$"
    return re.match(pattern, email) is not None


def password_strength(password: str):
    # returns score 0-5 and list of missing suggestions
    suggestions = []
    score = 0
    password = password or ""
    if len(password) >= 8:
        score += 1
    else:
        suggestions.append("At least 8 characters")
    if re.search(r"[A-Z]", password):
        score += 1
    else:
        suggestions.append("Include an uppercase letter")
    if re.search(r"[a-z]", password):
        score += 1
    else:
        suggestions.append("Include a lowercase letter")
    if re.search(r"\d", password):
        score += 1
    else:
        suggestions.append("Include a digit")
    if re.search(r"[^A-Za-z0-9]", password):
        score += 1
    else:
        suggestions.append("Include a special character")
    return score, suggestions


def signup_errors(email: str, confirm_email: str, password: str, confirm_password: str) -> List[str]:
    errors = []
    if not validate_email(email):
        errors.append("Invalid email format")
    if email != confirm_email:
        errors.append("Emails do not match")
    if password != confirm_password:
        errors.append("Passwords do not match")
    score, suggestions = password_strength(password)
    if score < 3:
        errors.append("Weak password: " + ", ".join(suggestions))
    return errors


def report_errors(title: str, description: str, address: str,
                  latitude: Optional[float] = None, longitude: Optional[float] = None) -> List[str]:
    errors = []
    if not (title or "").strip() or not (description or "").strip() or not (address or "").strip():
        errors.append("Please fill required fields: title, description, address")
    if (latitude is None) != (longitude is None):
        errors.append("Provide both latitude and longitude, or neither")
    if latitude is not None and not -90 <= latitude <= 90:
        errors.append("Latitude must be between -90 and 90")
    if longitude is not None and not -180 <= longitude <= 180:
        errors.append("Longitude must be between -180 and 180")
    return errors


def find_duplicates(reports: list, title: str, address: str) -> list:
    # same title and address, ignoring case and surrounding spaces
    title = (title or "").strip().lower()
    address = (address or "").strip().lower()
    return [r for r in reports
            if str(r.get("title") or "").strip().lower() == title
            and str(r.get("address") or "").strip().lower() == address]
