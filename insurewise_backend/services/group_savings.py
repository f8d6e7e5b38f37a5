"""
Group Savings (rotating fund) engine

Rule functions at module level read a group document and never write.
GroupSavingsEngine persists changes: every mutation re-reads the group,
applies the rules and writes back with a `revision` guard, retrying when
another request changed the group in between.
"""

from datetime import datetime, timedelta
import calendar
import logging

from bson import ObjectId
from pymongo import ReturnDocument

from insurewise_backend.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_COMMIT_ATTEMPTS = 5


# ==================== DATE HELPERS ====================

def add_months(value, months):
    """Same day `months` later, clamped to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance_by_frequency(value, frequency, periods=1):
    if frequency == 'weekly':
        return value + timedelta(days=7 * periods)
    return add_months(value, periods)


def calculate_end_date(start_date, frequency, max_members):
    """One cycle per member."""
    return advance_by_frequency(start_date, frequency, max_members)


def next_schedule(frequency, now=None):
    """
    Next contribution/payout date, counted from `now` rather than from the
    previous due date, so late payouts push the schedule forward.
    """
    now = now or datetime.utcnow()
    next_date = advance_by_frequency(now, frequency)
    return next_date, next_date


# ==================== RULES ====================

def _same_user(a, b):
    return str(a) == str(b)


def active_members(group):
    return [m for m in group.get('members', []) if m.get('isActive')]


def find_member(group, user_id):
    for member in group.get('members', []):
        if _same_user(member['user'], user_id):
            return member
    return None


def is_active_member(group, user_id):
    member = find_member(group, user_id)
    return bool(member and member.get('isActive'))


def is_full(group):
    return len(active_members(group)) >= group['maxMembers']


def can_member_join(group, user_id=None):
    if group['status'] != 'draft' or is_full(group):
        return False
    return user_id is None or find_member(group, user_id) is None


def next_position(group):
    return max([m['position'] for m in group.get('members', [])], default=0) + 1


def member_contributions(group, user_id):
    return [c for c in group.get('contributions', []) if _same_user(c['member'], user_id)]


def has_paid_for_cycle(group, user_id, cycle=None):
    cycle = group['currentCycle'] if cycle is None else cycle
    return any(
        c['cycle'] == cycle and c['status'] == 'paid'
        for c in member_contributions(group, user_id)
    )


def paid_contributions(group, cycle=None):
    cycle = group['currentCycle'] if cycle is None else cycle
    return [c for c in group.get('contributions', []) if c['cycle'] == cycle and c['status'] == 'paid']


def is_ready_for_payout(group):
    """Every active member has paid for the current cycle."""
    members = active_members(group)
    if group.get('status') != 'active' or not members:
        return False
    return len(paid_contributions(group)) == len(members)


def calculate_next_recipient(group):
    """Lowest-position active member who has not been paid out yet."""
    eligible = sorted(
        (m for m in active_members(group) if not m.get('receivedPayout')),
        key=lambda m: m['position'],
    )
    return eligible[0]['user'] if eligible else None


def payout_amount(group):
    return group['contributionAmount'] * len(active_members(group))


def all_members_paid_out(group):
    members = active_members(group)
    return bool(members) and all(m.get('receivedPayout') for m in members)


def overdue_contributions(group, now=None):
    """Pending contributions past their due date, reported as overdue (not persisted)."""
    now = now or datetime.utcnow()
    return [
        dict(c, status='overdue')
        for c in group.get('contributions', [])
        if c['status'] == 'pending' and c.get('dueDate') and c['dueDate'] < now
    ]


def member_stats(group, user_id):
    member = find_member(group, user_id)
    if not member:
        return {
            'totalContributed': 0,
            'contributionsMade': 0,
            'position': -1,
            'hasReceived': False,
        }

    total = sum(c['amount'] for c in member_contributions(group, user_id) if c['status'] == 'paid')
    stats = {
        'totalContributed': total,
        'contributionsMade': member.get('contributionsMade', 0),
        'position': member['position'],
        'hasReceived': bool(member.get('receivedPayout')),
    }
    if not member.get('receivedPayout'):
        stats['nextPayoutDate'] = group.get('nextPayoutDate')
    return stats


def _pending_entries(group, cycle, due_date):
    return [
        {
            '_id': ObjectId(),
            'member': m['user'],
            'amount': group['contributionAmount'],
            'dueDate': due_date,
            'paidDate': None,
            'transactionId': None,
            'status': 'pending',
            'cycle': cycle,
        }
        for m in active_members(group)
    ]


# ==================== ENGINE ====================

class GroupSavingsEngine:
    """Persists group savings state changes and moves money through the ledger."""

    def __init__(self, db, ledger):
        self.db = db
        self.ledger = ledger

    def get_group(self, group_id):
        group = self.db.group_savings.find_one({'_id': ObjectId(group_id)})
        if not group:
            raise NotFoundError('Group savings not found')
        return group

    def _commit(self, group, update):
        update.setdefault('$set', {})['updatedAt'] = datetime.utcnow()
        update.setdefault('$inc', {})['revision'] = 1
        return self.db.group_savings.find_one_and_update(
            {'_id': group['_id'], 'revision': group.get('revision', 0)},
            update,
            return_document=ReturnDocument.AFTER,
        )

    def _mutate(self, group_id, apply):
        """
        Re-read, apply and commit until the revision guard accepts the write.

        `apply(group)` returns (update, result) or raises an AppError.
        """
        for _ in range(MAX_COMMIT_ATTEMPTS):
            group = self.get_group(group_id)
            update, result = apply(group)
            updated = self._commit(group, update)
            if updated is not None:
                return updated, result
            logger.debug("Revision conflict on group %s, retrying", group_id)
        raise ConflictError('Group was modified by another request, please retry')

    # ---------- lifecycle ----------

    def create_group(self, creator_id, name, contribution_amount, frequency, start_date, max_members,
                     description=None, rules=None):
        rules = rules or {}
        now = datetime.utcnow()
        creator_id = ObjectId(creator_id)
        group = {
            '_id': ObjectId(),
            'name': name,
            'description': description,
            'creator': creator_id,
            'members': [{
                'user': creator_id,
                'position': 1,
                'joinedAt': now,
                'isActive': True,
                'contributionsMade': 0,
                'lastContributionDate': None,
                'receivedPayout': None,
            }],
            'contributions': [],
            'contributionAmount': float(contribution_amount),
            'frequency': frequency,
            'startDate': start_date,
            'endDate': calculate_end_date(start_date, frequency, max_members),
            'currentCycle': 1,
            'currentRecipient': None,
            'status': 'draft',
            'maxMembers': max_members,
            'totalContributed': 0.0,
            'totalPaidOut': 0.0,
            'nextContributionDate': start_date,
            'nextPayoutDate': start_date,
            'rules': {
                'allowEarlyWithdrawal': bool(rules.get('allowEarlyWithdrawal', False)),
                'penaltyAmount': float(rules.get('penaltyAmount', 0) or 0),
                'minimumContributions': int(rules.get('minimumContributions', 1) or 1),
                'autoKickInactive': bool(rules.get('autoKickInactive', True)),
            },
            'revision': 0,
            'createdAt': now,
            'updatedAt': now,
        }
        self.db.group_savings.insert_one(group)
        logger.info("Group savings %s created by %s (max %d members)", group['_id'], creator_id, max_members)
        return group

    def add_member(self, group_id, user_id):
        user_id = ObjectId(user_id)

        def apply(group):
            if find_member(group, user_id) is not None:
                raise ValidationError('You are already a member of this group')
            if group['status'] != 'draft':
                raise ValidationError('Group is no longer accepting members')
            if is_full(group):
                raise ValidationError('Group is full')
            member = {
                'user': user_id,
                'position': next_position(group),
                'joinedAt': datetime.utcnow(),
                'isActive': True,
                'contributionsMade': 0,
                'lastContributionDate': None,
                'receivedPayout': None,
            }
            return {'$push': {'members': member}}, member

        group, member = self._mutate(group_id, apply)
        logger.info("User %s joined group %s at position %d", user_id, group_id, member['position'])
        return group, member

    def remove_member(self, group_id, user_id):
        def apply(group):
            member = find_member(group, user_id)
            if member is None:
                raise ValidationError('You are not a member of this group')
            if group['status'] == 'active' and member.get('contributionsMade', 0) > 0:
                raise ValidationError('Cannot leave an active group after contributing')
            if group['status'] in ('completed', 'cancelled'):
                raise ValidationError('Cannot leave a group that has ended')

            members = [m for m in group['members'] if not _same_user(m['user'], user_id)]
            if group['status'] == 'draft':
                for index, remaining in enumerate(sorted(members, key=lambda m: m['position'])):
                    remaining['position'] = index + 1
            contributions = [
                c for c in group.get('contributions', [])
                if not (_same_user(c['member'], user_id) and c['status'] == 'pending')
            ]
            return {'$set': {'members': members, 'contributions': contributions}}, member

        group, member = self._mutate(group_id, apply)
        logger.info("User %s left group %s", user_id, group_id)

        # Everyone left in the cycle may already have paid
        if is_ready_for_payout(group):
            group, _ = self.process_payout(group_id)
        return group

    def start(self, group_id, user_id, now=None):
        def apply(group):
            if not _same_user(group['creator'], user_id):
                raise PermissionDeniedError('Only the group creator can start the group')
            if not is_active_member(group, user_id):
                raise PermissionDeniedError('The group creator is no longer a member of this group')
            if group['status'] != 'draft':
                raise ValidationError('Group cannot be started from its current status')
            if len(active_members(group)) < 2:
                raise ValidationError('Group must have at least 2 members to start')

            next_contribution, next_payout = next_schedule(group['frequency'], now)
            pending = _pending_entries(group, group['currentCycle'], next_contribution)
            return {
                '$set': {
                    'status': 'active',
                    'nextContributionDate': next_contribution,
                    'nextPayoutDate': next_payout,
                },
                '$push': {'contributions': {'$each': pending}},
            }, None

        group, _ = self._mutate(group_id, apply)
        logger.info("Group savings %s started with %d members", group_id, len(active_members(group)))
        return group

    # ---------- contributions and payouts ----------

    def record_contribution(self, group_id, user_id, amount, transaction_id=None):
        """
        Mark the member's contribution for the current cycle as paid.

        At most one paid contribution exists per (member, cycle); a second
        attempt raises ValidationError.
        """
        def apply(group):
            if float(amount) != float(group['contributionAmount']):
                raise ValidationError('Contribution amount must match group requirement')
            if not is_active_member(group, user_id):
                raise PermissionDeniedError('You are not an active member of this group')
            if group['status'] != 'active':
                raise ValidationError('Group is not active for contributions')
            if has_paid_for_cycle(group, user_id):
                raise ValidationError('You have already contributed for this cycle')

            now = datetime.utcnow()
            cycle = group['currentCycle']
            contributions = [dict(c) for c in group.get('contributions', [])]
            contribution = next(
                (c for c in contributions
                 if _same_user(c['member'], user_id) and c['cycle'] == cycle and c['status'] == 'pending'),
                None,
            )
            if contribution is None:
                contribution = {
                    '_id': ObjectId(),
                    'member': ObjectId(user_id),
                    'amount': float(amount),
                    'dueDate': group.get('nextContributionDate'),
                    'cycle': cycle,
                }
                contributions.append(contribution)
            contribution.update({
                'status': 'paid',
                'paidDate': now,
                'transactionId': transaction_id,
            })

            members = [dict(m) for m in group['members']]
            for member in members:
                if _same_user(member['user'], user_id):
                    member['contributionsMade'] = member.get('contributionsMade', 0) + 1
                    member['lastContributionDate'] = now

            return {
                '$set': {'contributions': contributions, 'members': members},
                '$inc': {'totalContributed': float(amount)},
            }, contribution

        return self._mutate(group_id, apply)

    def process_payout(self, group_id, now=None):
        """
        Pay the pooled amount to the next recipient once the cycle is complete.

        Returns (group, payout) where payout is None when the cycle is not
        ready or nobody is eligible.

        The recipient's wallet is resolved before the cycle advances, so a
        missing wallet leaves the group untouched. The cycle commit and the
        ledger credit are still two writes: a crash between them records a
        payout with no credit (known gap, same as the ledger's).
        """
        def apply(group):
            if not is_ready_for_payout(group):
                return None, None
            recipient = calculate_next_recipient(group)
            if recipient is None:
                return None, None

            paid_at = now or datetime.utcnow()
            amount = payout_amount(group)
            members = [dict(m) for m in group['members']]
            for member in members:
                if _same_user(member['user'], recipient):
                    member['receivedPayout'] = paid_at

            paid_cycle = group['currentCycle']
            new_cycle = paid_cycle + 1
            next_contribution, next_payout = next_schedule(group['frequency'], paid_at)
            updated_view = dict(group, members=members)

            update = {
                '$set': {
                    'members': members,
                    'currentRecipient': recipient,
                    'currentCycle': new_cycle,
                    'nextContributionDate': next_contribution,
                    'nextPayoutDate': next_payout,
                },
                '$inc': {'totalPaidOut': amount},
            }
            if all_members_paid_out(updated_view):
                update['$set']['status'] = 'completed'
            else:
                update['$push'] = {
                    'contributions': {'$each': _pending_entries(updated_view, new_cycle, next_contribution)}
                }
            return update, {'recipient': recipient, 'amount': amount, 'cycle': paid_cycle}

        for _ in range(MAX_COMMIT_ATTEMPTS):
            group = self.get_group(group_id)
            update, payout = apply(group)
            if update is None:
                return group, None
            recipient_wallet = self.ledger.get_wallet(payout['recipient'])
            updated = self._commit(group, update)
            if updated is not None:
                break
        else:
            raise ConflictError('Group was modified by another request, please retry')

        transaction = self.ledger.credit(
            recipient_wallet,
            payout['amount'],
            f"Group savings payout - {updated['name']}",
            category='group_savings_payout',
            metadata={'groupId': str(updated['_id']), 'cycle': payout['cycle']},
        )
        payout['transactionId'] = transaction['_id']
        logger.info("Group %s cycle %d payout of %.2f to %s", group_id, payout['cycle'],
                    payout['amount'], payout['recipient'])
        if updated['status'] == 'completed':
            logger.info("Group savings %s completed", group_id)
        return updated, payout

    def contribute(self, group_id, user_id):
        """
        Debit the member's wallet for this cycle, record the contribution and
        pay out if that completed the cycle.
        """
        group = self.get_group(group_id)
        if not is_active_member(group, user_id):
            raise PermissionDeniedError('You are not an active member of this group')
        if group['status'] != 'active':
            raise ValidationError('Group is not active for contributions')
        if has_paid_for_cycle(group, user_id):
            raise ValidationError('You have already contributed for this cycle')

        amount = group['contributionAmount']
        wallet = self.ledger.get_wallet(user_id)
        if not self.ledger.can_debit(wallet, amount):
            raise ValidationError('Insufficient wallet balance')

        debit = self.ledger.debit(
            wallet,
            amount,
            f"Group savings contribution - {group['name']}",
            category='group_savings',
            metadata={'groupId': str(group['_id']), 'cycle': group['currentCycle']},
        )
        if debit is None:
            raise ValidationError('Insufficient wallet balance')

        try:
            group, contribution = self.record_contribution(group_id, user_id, amount, debit['_id'])
        except AppError:
            # Another request won the race for this cycle
            self.ledger.credit(
                wallet,
                amount,
                f"Refund: group savings contribution - {group['name']}",
                category='group_savings',
                metadata={'groupId': str(group['_id']), 'refundOf': debit['reference']},
            )
            logger.warning("Refunded contribution %s for user %s in group %s",
                           debit['reference'], user_id, group_id)
            raise

        payout = None
        if is_ready_for_payout(group):
            group, payout = self.process_payout(group_id)

        logger.info("User %s contributed %.2f to group %s (cycle %d)",
                    user_id, amount, group_id, contribution['cycle'])
        return {
            'group': group,
            'contribution': contribution,
            'transaction': debit,
            'payout': payout,
            'wallet': self.ledger.get_wallet(user_id),
        }

    # ---------- statistics ----------

    def statistics(self, user_id):
        user_id = ObjectId(user_id)
        member_filter = {'members.user': user_id}
        groups = list(self.db.group_savings.find(member_filter, {'contributions': 1, 'status': 1}))

        total_contributed = sum(
            c['amount']
            for g in groups
            for c in g.get('contributions', [])
            if _same_user(c['member'], user_id) and c['status'] == 'paid'
        )
        total_received = sum(
            tx['amount'] for tx in self.db.transactions.find(
                {'userId': user_id, 'category': 'group_savings_payout', 'status': 'successful'},
                {'amount': 1},
            )
        )
        return {
            'totalGroups': len(groups),
            'activeGroups': sum(1 for g in groups if g['status'] == 'active'),
            'completedGroups': sum(1 for g in groups if g['status'] == 'completed'),
            'totalContributed': total_contributed,
            'totalReceived': total_received,
            'netSavings': total_received - total_contributed,
        }
