"""Company reviews of completed projects and provider replies"""
from sqlalchemy import or_

from servicehub.errors import ConflictError, NotFoundError, ValidationError
from servicehub.lifecycle import ProjectStatus
from servicehub.models import Project, ProviderProfile, Review, ReviewReply, User, db
from servicehub.permissions import require_project
from servicehub.services.notification_service import notify
from servicehub.utils import atomic, paginate_query, require_uuid

SUB_RATINGS = ('communication_rating', 'quality_rating', 'timeliness_rating', 'professionalism_rating')
SORT_ORDERS = {
    'newest': Review.created_at.desc(),
    'oldest': Review.created_at.asc(),
    'highest': Review.rating.desc(),
    'lowest': Review.rating.asc(),
}


def _validate_rating(value, field, required=True):
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 1 or value > 5:
        raise ValidationError(f"{field} must be an integer between 1 and 5")
    return value


def recalculate_provider_rating(provider_id):
    """Recalculate and update the provider's average rating; caller commits"""
    reviews = Review.query.filter_by(recipient_id=provider_id).all()
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    if profile is None:
        return
    if reviews:
        profile.rating = round(sum(r.rating for r in reviews) / len(reviews), 2)
        profile.total_reviews = len(reviews)
    else:
        profile.rating = 0.0
        profile.total_reviews = 0


def create_review(customer_id, data):
    project = require_project(data.get('project_id'), customer_id, 'customer')
    if project.status != ProjectStatus.COMPLETED:
        raise ValidationError('Can only review completed projects')
    if Review.query.filter_by(project_id=project.id, reviewer_id=customer_id).first():
        raise ConflictError('You have already reviewed this project')

    rating = _validate_rating(data.get('rating'), 'rating')
    sub_ratings = {field: _validate_rating(data.get(field), field, required=False) for field in SUB_RATINGS}
    comment = (data.get('comment') or '').strip()[:2000]

    with atomic():
        review = Review(
            project_id=project.id,
            reviewer_id=customer_id,
            recipient_id=project.provider_id,
            rating=rating,
            comment=comment,
            **sub_ratings
        )
        db.session.add(review)
        db.session.flush()
        recalculate_provider_rating(project.provider_id)
        notify(project.provider_id, 'review', 'New review',
               f"You received a {rating}-star review for '{project.title}'.",
               {'review_id': review.id, 'project_id': project.id})
    return review


def list_reviews(user_id, page, limit, review_type='all', rating=None, search=None, sort_by='newest'):
    if review_type == 'given':
        query = Review.query.filter(Review.reviewer_id == user_id)
    elif review_type == 'received':
        query = Review.query.filter(Review.recipient_id == user_id)
    elif review_type == 'all':
        query = Review.query.filter(or_(Review.reviewer_id == user_id, Review.recipient_id == user_id))
    else:
        raise ValidationError("Type must be one of: given, received, all")

    if rating is not None:
        query = query.filter(Review.rating == _validate_rating(rating, 'rating'))
    if search:
        pattern = f"%{search}%"
        query = query.join(Project, Review.project_id == Project.id) \
            .join(User, Review.recipient_id == User.id) \
            .filter(or_(Review.comment.ilike(pattern), Project.title.ilike(pattern), User.name.ilike(pattern)))
    if sort_by not in SORT_ORDERS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_ORDERS)}")

    reviews, pagination = paginate_query(query.order_by(SORT_ORDERS[sort_by]), page, limit)
    return [r.to_dict() for r in reviews], pagination


def get_review(user_id, review_id):
    review = db.session.get(Review, require_uuid(review_id, 'review id'))
    if review is None or user_id not in (review.reviewer_id, review.recipient_id):
        raise NotFoundError("Review not found or you don't have permission")
    return review


def update_review(user_id, review_id, data):
    review = get_review(user_id, review_id)
    if review.reviewer_id != user_id:
        raise NotFoundError("Review not found or you don't have permission")

    with atomic():
        if 'rating' in data:
            review.rating = _validate_rating(data['rating'], 'rating')
        for field in SUB_RATINGS:
            if field in data:
                setattr(review, field, _validate_rating(data[field], field, required=False))
        if 'comment' in data:
            review.comment = (data['comment'] or '').strip()[:2000]
        db.session.flush()
        recalculate_provider_rating(review.recipient_id)
    return review


def delete_review(user_id, review_id):
    review = get_review(user_id, review_id)
    if review.reviewer_id != user_id:
        raise NotFoundError("Review not found or you don't have permission")

    recipient_id = review.recipient_id
    with atomic():
        db.session.delete(review)
        db.session.flush()
        recalculate_provider_rating(recipient_id)


def review_stats(user_id, review_type='received'):
    column = Review.recipient_id if review_type == 'received' else Review.reviewer_id
    ratings = [r for (r,) in db.session.query(Review.rating).filter(column == user_id).all()]
    distribution = {str(star): sum(1 for r in ratings if r == star) for star in range(1, 6)}
    return {
        'total_reviews': len(ratings),
        'average_rating': round(sum(ratings) / len(ratings), 2) if ratings else 0.0,
        'rating_distribution': distribution
    }


def completed_projects_for_review(customer_id):
    projects = Project.query.filter_by(customer_id=customer_id, status=ProjectStatus.COMPLETED) \
        .order_by(Project.completed_at.desc()).all()
    reviewed = {r.project_id: r.id for r in Review.query.filter_by(reviewer_id=customer_id).all()}
    return [
        {
            'project_id': p.id,
            'title': p.title,
            'provider': p.provider.to_summary() if p.provider else None,
            'completed_at': p.completed_at.isoformat() if p.completed_at else None,
            'has_review': p.id in reviewed,
            'review_id': reviewed.get(p.id)
        }
        for p in projects
    ]


def reply_to_review(user_id, review_id, content):
    review = get_review(user_id, review_id)
    if review.recipient_id != user_id:
        raise ValidationError('Only the reviewed provider can reply')
    if review.replies:
        raise ConflictError('You have already replied to this review')
    content = (content or '').strip()
    if not content:
        raise ValidationError('Reply content is required')

    with atomic():
        reply = ReviewReply(review_id=review.id, user_id=user_id, content=content[:2000])
        db.session.add(reply)
        notify(review.reviewer_id, 'review', 'Reply to your review',
               'The provider replied to your review.', {'review_id': review.id})
    return reply


def update_reply(user_id, reply_id, content):
    reply = db.session.get(ReviewReply, require_uuid(reply_id, 'reply id'))
    if reply is None or reply.user_id != user_id:
        raise NotFoundError("Reply not found or you don't have permission")
    content = (content or '').strip()
    if not content:
        raise ValidationError('Reply content is required')
    with atomic():
        reply.content = content[:2000]
    return reply
