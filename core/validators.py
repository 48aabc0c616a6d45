"""
Custom field validators for users and note listings.
"""

import re
from django.core.exceptions import ValidationError


US_STATE_CODES = frozenset([
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI", "ID", "IL",
    "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE",
    "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "PR", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
])

PROFILE_IMAGE_MAX_BYTES = 5 * 1024 * 1024
PROFILE_IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'webp']
PROFILE_IMAGE_CONTENT_TYPES = ['image/jpeg', 'image/png', 'image/webp']


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts digits with optional leading +, spaces, dashes and parentheses,
    e.g. +1 (234) 567-8900. At least 10 digits are required.

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Optional field
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_profile_image(image):
    """
    Validate an uploaded profile image (max 5MB; jpg, png or webp).

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    if image.size > PROFILE_IMAGE_MAX_BYTES:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    file_name = image.name.lower()
    if not any(file_name.endswith(f'.{ext}') for ext in PROFILE_IMAGE_EXTENSIONS):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(PROFILE_IMAGE_EXTENSIONS)}',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in PROFILE_IMAGE_CONTENT_TYPES:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )


def validate_state_code(value):
    """
    Validate a two-letter US state code.

    Args:
        value: State code string (case-insensitive)

    Raises:
        ValidationError: If the code is not a known state or territory
    """
    if not value:
        return

    if value.strip().upper() not in US_STATE_CODES:
        raise ValidationError(
            f'"{value}" is not a valid two-letter state code.',
            code='invalid_state_code'
        )
