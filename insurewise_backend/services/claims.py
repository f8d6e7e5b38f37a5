"""
Claim workflow

pending -> under_review -> approved | declined
pending ----------------> approved | declined

Each transition is a conditional update on the claim's current status, so
two reviewers acting at once cannot both succeed. `paid` is set outside the
API.
"""

from datetime import datetime
import logging
import random
import threading

from bson import ObjectId
from pymongo import ReturnDocument

from insurewise_backend.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = ['pending']
DECIDABLE_STATUSES = ['pending', 'under_review']
DOCUMENT_OPEN_STATUSES = ['pending', 'under_review']


def can_be_approved(claim):
    return claim['status'] in DECIDABLE_STATUSES


def format_amount(amount, currency='NGN'):
    if amount is None:
        return None
    return f"{currency} {amount:,.2f}"


def claim_age_in_days(claim, now=None):
    now = now or datetime.utcnow()
    return (now - claim['createdAt']).days


def mock_ml_analysis(claim):
    """Stand-in for a receipt/claim scoring service. Advisory only."""
    confidence = random.uniform(0.6, 1.0)
    if confidence > 0.8 and claim['amount'] < 100000:
        recommendation = 'approve'
    elif confidence < 0.7 or claim['amount'] > 500000:
        recommendation = 'manual_review'
    else:
        recommendation = 'approve' if random.random() > 0.7 else 'manual_review'

    return {
        'confidence': round(confidence, 4),
        'recommendation': recommendation,
        'extractedData': {
            'date': datetime.utcnow().date().isoformat(),
            'amount': claim['amount'],
            'category': claim['type'],
        },
        'processedAt': datetime.utcnow(),
    }


class ClaimWorkflow:
    def __init__(self, db, analysis_delay_seconds=2.0, run_analysis_sync=False, analyzer=None):
        self.db = db
        self.analysis_delay_seconds = analysis_delay_seconds
        self.run_analysis_sync = run_analysis_sync
        self.analyzer = analyzer or mock_ml_analysis

    def submit(self, user_id, claim_type, title, description, amount, currency='NGN',
               receipt_url=None, documents=None):
        now = datetime.utcnow()
        claim = {
            '_id': ObjectId(),
            'userId': ObjectId(user_id),
            'type': claim_type,
            'title': title,
            'description': description,
            'amount': float(amount),
            'currency': currency,
            'status': 'pending',
            'receiptUrl': receipt_url,
            'documents': documents or [],
            'mlAnalysisResult': None,
            'reviewedBy': None,
            'reviewedAt': None,
            'reviewNotes': None,
            'approvedAmount': None,
            'paidAt': None,
            'createdAt': now,
            'updatedAt': now,
        }
        self.db.claims.insert_one(claim)
        logger.info("Claim %s submitted by %s: %s %.2f", claim['_id'], user_id, claim_type, claim['amount'])
        self.schedule_analysis(claim)
        return claim

    # ==================== ML ANALYSIS ====================

    def schedule_analysis(self, claim):
        if self.run_analysis_sync:
            self.run_analysis(claim)
            return None
        timer = threading.Timer(self.analysis_delay_seconds, self.run_analysis, args=(claim,))
        timer.daemon = True
        timer.start()
        return timer

    def run_analysis(self, claim):
        """Attach the analysis result; never touches the claim status."""
        try:
            result = self.analyzer(claim)
            self.db.claims.update_one(
                {'_id': claim['_id']},
                {'$set': {'mlAnalysisResult': result, 'updatedAt': datetime.utcnow()}}
            )
            logger.info("ML analysis for claim %s: %s (%.2f)", claim['_id'],
                        result['recommendation'], result['confidence'])
        except Exception as e:
            # Runs off the request thread; nothing to propagate to
            logger.error("ML analysis failed for claim %s: %s", claim['_id'], e)

    # ==================== TRANSITIONS ====================

    def _transition(self, claim_id, from_statuses, update, failure_message):
        claim_id = ObjectId(claim_id)
        update.setdefault('updatedAt', datetime.utcnow())
        claim = self.db.claims.find_one_and_update(
            {'_id': claim_id, 'status': {'$in': from_statuses}},
            {'$set': update},
            return_document=ReturnDocument.AFTER,
        )
        if claim is None:
            if self.db.claims.count_documents({'_id': claim_id}) == 0:
                raise NotFoundError('Claim not found')
            raise ValidationError(failure_message)
        return claim

    def mark_under_review(self, claim_id, reviewer_id, notes=None):
        update = {
            'status': 'under_review',
            'reviewedBy': ObjectId(reviewer_id),
            'reviewedAt': datetime.utcnow(),
        }
        if notes:
            update['reviewNotes'] = notes
        return self._transition(claim_id, REVIEWABLE_STATUSES, update,
                                'Claim cannot be marked as under review')

    def approve(self, claim_id, reviewer_id, approved_amount=None, notes=None):
        claim = self.get_claim(claim_id)
        if not can_be_approved(claim):
            raise ValidationError('Claim cannot be approved')

        amount = claim['amount'] if approved_amount is None else float(approved_amount)
        if amount <= 0:
            raise ValidationError('Approved amount must be greater than 0')
        if amount > claim['amount']:
            raise ValidationError('Approved amount cannot exceed the claimed amount')

        update = {
            'status': 'approved',
            'approvedAmount': amount,
            'reviewedBy': ObjectId(reviewer_id),
            'reviewedAt': datetime.utcnow(),
        }
        if notes:
            update['reviewNotes'] = notes
        return self._transition(claim_id, DECIDABLE_STATUSES, update, 'Claim cannot be approved')

    def decline(self, claim_id, reviewer_id, notes):
        if not notes or not str(notes).strip():
            raise ValidationError('Notes are required when declining a claim')
        update = {
            'status': 'declined',
            'reviewNotes': str(notes).strip(),
            'reviewedBy': ObjectId(reviewer_id),
            'reviewedAt': datetime.utcnow(),
        }
        return self._transition(claim_id, DECIDABLE_STATUSES, update, 'Claim cannot be declined')

    def update_status(self, claim_id, reviewer_id, status, notes=None, approved_amount=None):
        if status == 'under_review':
            claim = self.mark_under_review(claim_id, reviewer_id, notes)
        elif status == 'approved':
            claim = self.approve(claim_id, reviewer_id, approved_amount, notes)
        elif status == 'declined':
            claim = self.decline(claim_id, reviewer_id, notes)
        else:
            raise ValidationError('Invalid status update')

        logger.info("Claim %s moved to %s by %s", claim['_id'], status, reviewer_id)
        return claim

    # ==================== READS AND DOCUMENTS ====================

    def get_claim(self, claim_id):
        claim = self.db.claims.find_one({'_id': ObjectId(claim_id)})
        if not claim:
            raise NotFoundError('Claim not found')
        return claim

    def add_documents(self, claim_id, user_id, document_urls):
        claim = self.db.claims.find_one_and_update(
            {
                '_id': ObjectId(claim_id),
                'userId': ObjectId(user_id),
                'status': {'$in': DOCUMENT_OPEN_STATUSES},
            },
            {
                '$push': {'documents': {'$each': document_urls}},
                '$set': {'updatedAt': datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if claim is None:
            raise NotFoundError('Claim not found or cannot be modified')
        logger.info("%d document(s) added to claim %s", len(document_urls), claim_id)
        return claim

    def statistics(self, user_id=None):
        match = {'userId': ObjectId(user_id)} if user_id else {}
        pipeline = [
            {'$match': match},
            {'$group': {
                '_id': '$status',
                'count': {'$sum': 1},
                'totalAmount': {'$sum': '$amount'},
                'averageAmount': {'$avg': '$amount'},
            }},
            {'$sort': {'_id': 1}},
        ]
        breakdown = [
            {
                'status': row['_id'],
                'count': row['count'],
                'totalAmount': row['totalAmount'],
                'averageAmount': row['averageAmount'],
            }
            for row in self.db.claims.aggregate(pipeline)
        ]
        return {
            'statusBreakdown': breakdown,
            'totalClaims': sum(row['count'] for row in breakdown),
            'totalClaimValue': sum(row['totalAmount'] for row in breakdown),
        }
