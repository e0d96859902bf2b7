"""Company and provider profiles, certifications and portfolio items"""
from servicehub.errors import NotFoundError, ValidationError
from servicehub.models import Certification, CustomerProfile, Portfolio, ProviderProfile, db
from servicehub.utils import atomic, filter_undefined, parse_amount, parse_date, parse_text_list, require_uuid

COMPANY_PROFILE_FIELDS = ('company_name', 'company_size', 'industry', 'website', 'description',
                          'location', 'logo_url', 'registration_number')
PROVIDER_PROFILE_FIELDS = ('bio', 'location', 'availability', 'website')
PROVIDER_AVAILABILITY = ('available', 'busy', 'unavailable')


def _completion(values):
    filled = sum(1 for value in values if value not in (None, '', []))
    return round(filled / len(values) * 100)


def get_company_profile(user):
    profile = user.customer_profile
    if profile is None:
        raise NotFoundError('Company profile not found')
    return profile


def upsert_company_profile(user, data):
    with atomic():
        profile = user.customer_profile
        if profile is None:
            profile = CustomerProfile(user_id=user.id)
            db.session.add(profile)
        for field, value in filter_undefined(data, COMPANY_PROFILE_FIELDS).items():
            setattr(profile, field, value)
        if data.get('name'):
            user.name = data['name'].strip()
        if 'phone' in data:
            user.phone = data['phone']
    return profile


def company_profile_completion(user):
    profile = user.customer_profile
    values = [user.name, user.phone] + [getattr(profile, f, None) for f in COMPANY_PROFILE_FIELDS]
    return {'completion': _completion(values), 'is_verified': user.is_verified, 'kyc_status': user.kyc_status}


def get_provider_profile(user):
    profile = user.provider_profile
    if profile is None:
        raise NotFoundError('Provider profile not found')
    return profile


def upsert_provider_profile(user, data):
    if data.get('availability') and data['availability'] not in PROVIDER_AVAILABILITY:
        raise ValidationError(f"Availability must be one of: {', '.join(PROVIDER_AVAILABILITY)}")

    with atomic():
        profile = user.provider_profile
        if profile is None:
            profile = ProviderProfile(user_id=user.id)
            db.session.add(profile)
        for field, value in filter_undefined(data, PROVIDER_PROFILE_FIELDS).items():
            setattr(profile, field, value)
        if 'skills' in data:
            profile.skills = parse_text_list(data['skills'])
        if 'languages' in data:
            profile.languages = parse_text_list(data['languages'])
        if 'hourly_rate' in data:
            profile.hourly_rate = parse_amount(data['hourly_rate'], 'hourly_rate', required=False)
        if 'years_experience' in data:
            years = data['years_experience']
            if years is not None and (not isinstance(years, int) or years < 0):
                raise ValidationError('years_experience must be a non-negative integer')
            profile.years_experience = years
        if data.get('name'):
            user.name = data['name'].strip()
        if 'phone' in data:
            user.phone = data['phone']
    return profile


def provider_profile_completion(user):
    profile = user.provider_profile
    values = [user.name, user.phone]
    if profile is not None:
        values += [profile.bio, profile.location, profile.skills, profile.hourly_rate,
                   profile.years_experience, profile.languages,
                   profile.certifications, profile.portfolios,
                   profile.bank_account_number]
    else:
        values += [None] * 9
    return {'completion': _completion(values), 'is_verified': user.is_verified, 'kyc_status': user.kyc_status}


def add_certification(user, data):
    profile = get_provider_profile(user)
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Certification name is required')
    with atomic():
        certification = Certification(
            profile_id=profile.id,
            name=name,
            issuer=data.get('issuer'),
            issued_date=parse_date(data.get('issued_date'), 'issued_date'),
            credential_url=data.get('credential_url')
        )
        db.session.add(certification)
    return certification


def delete_certification(user, certification_id):
    profile = get_provider_profile(user)
    certification = db.session.get(Certification, require_uuid(certification_id, 'certification id'))
    if certification is None or certification.profile_id != profile.id:
        raise NotFoundError("Certification not found or you don't have permission")
    with atomic():
        db.session.delete(certification)


def add_portfolio(user, data):
    profile = get_provider_profile(user)
    title = (data.get('title') or '').strip()
    if not title:
        raise ValidationError('Portfolio title is required')
    with atomic():
        item = Portfolio(
            profile_id=profile.id,
            title=title,
            description=data.get('description'),
            image_url=data.get('image_url'),
            project_url=data.get('project_url'),
            technologies=parse_text_list(data.get('technologies')),
            client=data.get('client')
        )
        db.session.add(item)
    return item


def delete_portfolio(user, portfolio_id):
    profile = get_provider_profile(user)
    item = db.session.get(Portfolio, require_uuid(portfolio_id, 'portfolio id'))
    if item is None or item.profile_id != profile.id:
        raise NotFoundError("Portfolio item not found or you don't have permission")
    with atomic():
        db.session.delete(item)
