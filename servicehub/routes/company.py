"""Company (customer) endpoints: profile, projects, proposals, milestones, billing, reviews"""
from flask import Blueprint, request

from servicehub.auth import current_user, roles_required
from servicehub.errors import created, ok
from servicehub.lifecycle import Role
from servicehub.services import (billing_service, milestone_service, payment_service, profile_service,
                                 project_request_service, review_service, service_request_service)
from servicehub.utils import get_json, get_pagination

company_bp = Blueprint('company', __name__)

customer_required = roles_required(Role.CUSTOMER)


# Profile

@company_bp.route('/profile', methods=['GET'])
@customer_required
def get_profile():
    user = current_user()
    data = profile_service.get_company_profile(user).to_dict()
    data['user'] = user.to_dict()
    return ok(data)


@company_bp.route('/profile', methods=['PUT'])
@customer_required
def update_profile():
    profile = profile_service.upsert_company_profile(current_user(), get_json())
    return ok(profile.to_dict(), 'Profile updated successfully')


@company_bp.route('/profile/completion', methods=['GET'])
@customer_required
def profile_completion():
    return ok(profile_service.company_profile_completion(current_user()))


# Service requests and projects

@company_bp.route('/projects', methods=['POST'])
@customer_required
def create_project():
    service_request = service_request_service.create_service_request(current_user().id, get_json())
    return created(service_request.to_dict(), 'Service request created successfully')


@company_bp.route('/projects', methods=['GET'])
@customer_required
def list_projects():
    page, limit = get_pagination()
    items, pagination = service_request_service.list_company_projects(
        current_user().id, page, limit,
        status=request.args.get('status'),
        category=request.args.get('category')
    )
    return ok({'items': items, 'pagination': pagination})


@company_bp.route('/projects/<item_id>', methods=['GET'])
@customer_required
def get_project(item_id):
    return ok(service_request_service.get_company_project(current_user().id, item_id))


@company_bp.route('/projects/<item_id>', methods=['PATCH', 'PUT'])
@customer_required
def update_project(item_id):
    data = service_request_service.update_project_details(current_user().id, item_id, get_json())
    return ok(data, 'Project updated successfully')


@company_bp.route('/projects/<project_id>/status', methods=['PATCH'])
@customer_required
def update_project_status(project_id):
    project = service_request_service.update_project_status(current_user().id, project_id,
                                                           get_json().get('status'))
    return ok(project.to_dict(), 'Project status updated')


@company_bp.route('/projects/<request_id>/close', methods=['POST'])
@customer_required
def close_request(request_id):
    service_request = service_request_service.close_service_request(current_user().id, request_id)
    return ok(service_request.to_dict(), 'Service request closed')


@company_bp.route('/request-milestones/<request_id>', methods=['GET'])
@customer_required
def get_request_milestones(request_id):
    service_request = service_request_service.get_request_milestones(current_user().id, request_id)
    return ok([m.to_dict() for m in service_request.milestones])


@company_bp.route('/request-milestones/<request_id>', methods=['PUT'])
@customer_required
def replace_request_milestones(request_id):
    service_request = service_request_service.replace_request_milestones(
        current_user().id, request_id, get_json().get('milestones'))
    return ok([m.to_dict() for m in service_request.milestones], 'Milestones updated')


# Project milestones

@company_bp.route('/projects/<project_id>/milestones', methods=['GET'])
@customer_required
def get_milestones(project_id):
    return ok(milestone_service.get_plan(current_user().id, project_id, 'customer'))


@company_bp.route('/projects/<project_id>/milestones', methods=['PUT'])
@customer_required
def replace_milestones(project_id):
    data = milestone_service.replace_plan(current_user().id, project_id, 'customer',
                                          get_json().get('milestones'))
    return ok(data, 'Milestones updated. Both parties must approve again.')


@company_bp.route('/projects/<project_id>/milestones/approve', methods=['POST'])
@customer_required
def approve_milestones(project_id):
    data = milestone_service.approve_plan(current_user().id, project_id, 'customer')
    message = 'Milestones locked' if data['milestones_locked'] else 'Milestones approved'
    return ok(data, message)


@company_bp.route('/milestones/<milestone_id>/approve', methods=['POST'])
@customer_required
def approve_milestone(milestone_id):
    milestone = milestone_service.approve_milestone(current_user().id, milestone_id)
    return ok(milestone.to_dict(), 'Milestone approved')


@company_bp.route('/milestones/<milestone_id>/reject', methods=['POST'])
@customer_required
def reject_milestone(milestone_id):
    milestone = milestone_service.reject_milestone(current_user().id, milestone_id, get_json().get('reason'))
    return ok(milestone.to_dict(), 'Milestone rejected')


@company_bp.route('/milestones/<milestone_id>/pay', methods=['POST'])
@customer_required
def pay_milestone(milestone_id):
    milestone = milestone_service.pay_milestone(current_user().id, milestone_id)
    return ok(milestone.to_dict(), 'Milestone paid')


@company_bp.route('/milestones/<milestone_id>/release-payment', methods=['POST'])
@customer_required
def release_payment(milestone_id):
    payment = payment_service.release_payment(current_user().id, milestone_id)
    return ok(payment.to_dict(), 'Payment released. The provider will be paid by bank transfer.')


# Proposals received

@company_bp.route('/project-requests', methods=['GET'])
@customer_required
def list_project_requests():
    page, limit = get_pagination()
    items, pagination = project_request_service.list_project_requests(
        current_user().id, page, limit,
        status=request.args.get('status'),
        category=request.args.get('category'),
        service_request_id=request.args.get('service_request_id')
    )
    return ok({'items': items, 'pagination': pagination})


@company_bp.route('/project-requests/stats', methods=['GET'])
@customer_required
def project_request_stats():
    return ok(project_request_service.project_request_stats(current_user().id))


@company_bp.route('/project-requests/<proposal_id>', methods=['GET'])
@customer_required
def get_project_request(proposal_id):
    proposal = project_request_service.get_project_request(current_user().id, proposal_id)
    return ok(proposal.to_dict(include_request=True))


@company_bp.route('/project-requests/<proposal_id>/accept', methods=['POST'])
@customer_required
def accept_project_request(proposal_id):
    project = project_request_service.accept_proposal(current_user().id, proposal_id)
    return ok(project.to_dict(), 'Proposal accepted and project created')


@company_bp.route('/project-requests/<proposal_id>/reject', methods=['POST'])
@customer_required
def reject_project_request(proposal_id):
    proposal = project_request_service.reject_proposal(current_user().id, proposal_id,
                                                       get_json().get('reason'))
    return ok(proposal.to_dict(), 'Proposal rejected')


# Billing

@company_bp.route('/billing/overview', methods=['GET'])
@customer_required
def billing_overview():
    return ok(billing_service.company_overview(current_user().id))


@company_bp.route('/billing/transactions', methods=['GET'])
@customer_required
def billing_transactions():
    page, limit = get_pagination()
    items, pagination = billing_service.company_transactions(current_user().id, page, limit,
                                                             status=request.args.get('status'))
    return ok({'items': items, 'pagination': pagination})


@company_bp.route('/billing/invoices', methods=['GET'])
@customer_required
def billing_invoices():
    page, limit = get_pagination()
    items, pagination = billing_service.company_invoices(current_user().id, page, limit)
    return ok({'items': items, 'pagination': pagination})


@company_bp.route('/billing/upcoming', methods=['GET'])
@customer_required
def billing_upcoming():
    return ok(billing_service.upcoming_payments(current_user().id))


@company_bp.route('/billing/payments/<payment_id>', methods=['GET'])
@customer_required
def billing_payment(payment_id):
    return ok(billing_service.payment_detail(current_user().id, payment_id))


@company_bp.route('/billing/payments/<payment_id>/receipt', methods=['GET'])
@customer_required
def billing_receipt(payment_id):
    return ok(billing_service.payment_receipt(current_user().id, payment_id))


# Reviews

@company_bp.route('/reviews', methods=['POST'])
@customer_required
def create_review():
    review = review_service.create_review(current_user().id, get_json())
    return created(review.to_dict(), 'Review submitted')


@company_bp.route('/reviews', methods=['GET'])
@customer_required
def list_reviews():
    page, limit = get_pagination()
    items, pagination = review_service.list_reviews(
        current_user().id, page, limit,
        review_type=request.args.get('type', 'given'),
        rating=request.args.get('rating', type=int),
        search=request.args.get('search'),
        sort_by=request.args.get('sort_by', 'newest')
    )
    return ok({'items': items, 'pagination': pagination})


@company_bp.route('/reviews/stats', methods=['GET'])
@customer_required
def review_stats():
    return ok(review_service.review_stats(current_user().id, request.args.get('type', 'given')))


@company_bp.route('/reviews/completed-projects', methods=['GET'])
@customer_required
def completed_projects():
    return ok(review_service.completed_projects_for_review(current_user().id))


@company_bp.route('/reviews/<review_id>', methods=['GET'])
@customer_required
def get_review(review_id):
    return ok(review_service.get_review(current_user().id, review_id).to_dict())


@company_bp.route('/reviews/<review_id>', methods=['PATCH', 'PUT'])
@customer_required
def update_review(review_id):
    review = review_service.update_review(current_user().id, review_id, get_json())
    return ok(review.to_dict(), 'Review updated')


@company_bp.route('/reviews/<review_id>', methods=['DELETE'])
@customer_required
def delete_review(review_id):
    review_service.delete_review(current_user().id, review_id)
    return ok(None, 'Review deleted')
