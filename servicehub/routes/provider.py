"""Provider endpoints: profile, opportunities, proposals, projects, milestones, billing, reviews"""
from flask import Blueprint, request

from servicehub.auth import current_user, roles_required
from servicehub.errors import created, ok
from servicehub.lifecycle import Role
from servicehub.services import (billing_service, milestone_service, opportunity_service, profile_service,
                                 proposal_service, provider_project_service, review_service)
from servicehub.utils import get_json, get_pagination, parse_amount

provider_bp = Blueprint('provider', __name__)

provider_required = roles_required(Role.PROVIDER)


# Profile

@provider_bp.route('/profile', methods=['GET'])
@provider_required
def get_profile():
    user = current_user()
    data = profile_service.get_provider_profile(user).to_dict(include_bank=True)
    data['user'] = user.to_dict()
    return ok(data)


@provider_bp.route('/profile', methods=['PUT'])
@provider_required
def update_profile():
    profile = profile_service.upsert_provider_profile(current_user(), get_json())
    return ok(profile.to_dict(), 'Profile updated successfully')


@provider_bp.route('/profile/completion', methods=['GET'])
@provider_required
def profile_completion():
    return ok(profile_service.provider_profile_completion(current_user()))


@provider_bp.route('/certifications', methods=['GET'])
@provider_required
def list_certifications():
    profile = profile_service.get_provider_profile(current_user())
    return ok([c.to_dict() for c in profile.certifications])


@provider_bp.route('/certifications', methods=['POST'])
@provider_required
def add_certification():
    certification = profile_service.add_certification(current_user(), get_json())
    return created(certification.to_dict(), 'Certification added')


@provider_bp.route('/certifications/<certification_id>', methods=['DELETE'])
@provider_required
def delete_certification(certification_id):
    profile_service.delete_certification(current_user(), certification_id)
    return ok(None, 'Certification deleted')


@provider_bp.route('/portfolio', methods=['GET'])
@provider_required
def list_portfolio():
    profile = profile_service.get_provider_profile(current_user())
    return ok([p.to_dict() for p in profile.portfolios])


@provider_bp.route('/portfolio', methods=['POST'])
@provider_required
def add_portfolio():
    item = profile_service.add_portfolio(current_user(), get_json())
    return created(item.to_dict(), 'Portfolio item added')


@provider_bp.route('/portfolio/<portfolio_id>', methods=['DELETE'])
@provider_required
def delete_portfolio(portfolio_id):
    profile_service.delete_portfolio(current_user(), portfolio_id)
    return ok(None, 'Portfolio item deleted')


# Opportunities

@provider_bp.route('/opportunities', methods=['GET'])
@provider_required
def list_opportunities():
    page, limit = get_pagination()
    items, pagination = opportunity_service.list_opportunities(
        current_user().id, page, limit,
        search=request.args.get('search'),
        category=request.args.get('category'),
        min_budget=parse_amount(request.args.get('min_budget'), 'min_budget', required=False, positive=False),
        max_budget=parse_amount(request.args.get('max_budget'), 'max_budget', required=False, positive=False)
    )
    return ok({'items': items, 'pagination': pagination})


@provider_bp.route('/opportunities/<request_id>', methods=['GET'])
@provider_required
def get_opportunity(request_id):
    return ok(opportunity_service.get_opportunity(current_user().id, request_id))


# Proposals

@provider_bp.route('/proposals', methods=['POST'])
@provider_required
def send_proposal():
    proposal = proposal_service.send_proposal(current_user().id, get_json())
    return created(proposal.to_dict(), 'Proposal sent successfully')


@provider_bp.route('/proposals', methods=['GET'])
@provider_required
def list_proposals():
    page, limit = get_pagination()
    items, pagination = proposal_service.list_provider_proposals(current_user().id, page, limit,
                                                                 status=request.args.get('status'))
    return ok({'items': items, 'pagination': pagination})


@provider_bp.route('/proposals/<proposal_id>', methods=['GET'])
@provider_required
def get_proposal(proposal_id):
    proposal = proposal_service.get_provider_proposal(current_user().id, proposal_id)
    return ok(proposal.to_dict(include_request=True))


@provider_bp.route('/proposals/<proposal_id>', methods=['PATCH', 'PUT'])
@provider_required
def update_proposal(proposal_id):
    proposal = proposal_service.update_proposal(current_user().id, proposal_id, get_json())
    return ok(proposal.to_dict(), 'Proposal updated')


@provider_bp.route('/proposals/<proposal_id>', methods=['DELETE'])
@provider_required
def delete_proposal(proposal_id):
    proposal_service.delete_proposal(current_user().id, proposal_id)
    return ok(None, 'Proposal withdrawn')


# Projects

@provider_bp.route('/projects', methods=['GET'])
@provider_required
def list_projects():
    page, limit = get_pagination()
    items, pagination = provider_project_service.list_provider_projects(
        current_user().id, page, limit,
        status=request.args.get('status'),
        category=request.args.get('category'),
        search=request.args.get('search')
    )
    return ok({'items': items, 'pagination': pagination})


@provider_bp.route('/projects/stats', methods=['GET'])
@provider_required
def project_stats():
    return ok(provider_project_service.provider_project_stats(current_user().id))


@provider_bp.route('/projects/<project_id>', methods=['GET'])
@provider_required
def get_project(project_id):
    return ok(provider_project_service.get_provider_project(current_user().id, project_id).to_dict())


@provider_bp.route('/projects/<project_id>/status', methods=['PATCH'])
@provider_required
def update_project_status(project_id):
    project = provider_project_service.update_project_status(current_user().id, project_id,
                                                             get_json().get('status'))
    return ok(project.to_dict(), 'Project status updated')


@provider_bp.route('/projects/<project_id>/milestones', methods=['GET'])
@provider_required
def get_milestones(project_id):
    return ok(milestone_service.get_plan(current_user().id, project_id, 'provider'))


@provider_bp.route('/projects/<project_id>/milestones', methods=['PUT'])
@provider_required
def replace_milestones(project_id):
    data = milestone_service.replace_plan(current_user().id, project_id, 'provider',
                                          get_json().get('milestones'))
    return ok(data, 'Milestones updated. Both parties must approve again.')


@provider_bp.route('/projects/<project_id>/milestones/approve', methods=['POST'])
@provider_required
def approve_milestones(project_id):
    data = milestone_service.approve_plan(current_user().id, project_id, 'provider')
    message = 'Milestones locked' if data['milestones_locked'] else 'Milestones approved'
    return ok(data, message)


@provider_bp.route('/milestones/<milestone_id>/status', methods=['PATCH'])
@provider_required
def update_milestone_status(milestone_id):
    data = get_json()
    milestone = milestone_service.update_milestone_status(
        current_user().id, milestone_id, data.get('status'),
        deliverables=data.get('deliverables'),
        note=data.get('submission_note')
    )
    return ok(milestone.to_dict(), 'Milestone updated')


# Billing

@provider_bp.route('/billing/overview', methods=['GET'])
@provider_required
def billing_overview():
    return ok(billing_service.provider_overview(current_user().id))


@provider_bp.route('/billing/bank-details', methods=['PUT'])
@provider_required
def update_bank_details():
    return ok(billing_service.update_bank_details(current_user().id, get_json()), 'Bank details saved')


@provider_bp.route('/billing/bank-details', methods=['DELETE'])
@provider_required
def clear_bank_details():
    billing_service.clear_bank_details(current_user().id)
    return ok(None, 'Bank details removed')


@provider_bp.route('/billing/payments/<payment_id>', methods=['GET'])
@provider_required
def billing_payment(payment_id):
    return ok(billing_service.payment_detail(current_user().id, payment_id))


@provider_bp.route('/billing/payments/<payment_id>/receipt', methods=['GET'])
@provider_required
def billing_receipt(payment_id):
    return ok(billing_service.payment_receipt(current_user().id, payment_id))


# Reviews

@provider_bp.route('/reviews', methods=['GET'])
@provider_required
def list_reviews():
    page, limit = get_pagination()
    items, pagination = review_service.list_reviews(
        current_user().id, page, limit,
        review_type=request.args.get('type', 'received'),
        rating=request.args.get('rating', type=int),
        search=request.args.get('search'),
        sort_by=request.args.get('sort_by', 'newest')
    )
    return ok({'items': items, 'pagination': pagination})


@provider_bp.route('/reviews/stats', methods=['GET'])
@provider_required
def review_stats():
    return ok(review_service.review_stats(current_user().id, 'received'))


@provider_bp.route('/reviews/<review_id>', methods=['GET'])
@provider_required
def get_review(review_id):
    return ok(review_service.get_review(current_user().id, review_id).to_dict())


@provider_bp.route('/reviews/<review_id>/reply', methods=['POST'])
@provider_required
def reply_to_review(review_id):
    reply = review_service.reply_to_review(current_user().id, review_id, get_json().get('content'))
    return created(reply.to_dict(), 'Reply posted')


@provider_bp.route('/reviews/replies/<reply_id>', methods=['PATCH', 'PUT'])
@provider_required
def update_reply(reply_id):
    reply = review_service.update_reply(current_user().id, reply_id, get_json().get('content'))
    return ok(reply.to_dict(), 'Reply updated')
