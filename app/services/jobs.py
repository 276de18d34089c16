"""Job lifecycle: state machine transitions and their ledger/trust side effects.

Each operation runs inside one store transaction, so a failing side effect
leaves the job untouched. Notifications go out only after commit.
"""

from app.core.audit import log_event
from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    DuplicateApplicationError,
    NoCompletionSubmittedError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)
from app.core.logging import get_logger
from app.models.application import Application, ApplicationStatus
from app.models.audit_log import AuditLog
from app.models.credit_transaction import TransactionType
from app.models.dispute import Dispute, DisputeType
from app.models.job import OPEN_STATUSES, Job, JobStatus, Location, can_transition, split_payment
from app.models.job_completion import CompletionProof, JobCompletion
from app.models.penalty import Penalty, PenaltyType
from app.models.user import User
from app.models.worker_profile import WorkerProfile
from app.services.authz import authorize
from app.services.credits import Ledger
from app.services.notifications import Notice, Notifier, dispatch
from app.services.trust import TrustEngine, ViolationType
from app.stores.base import Stores

log = get_logger(__name__)

PENALTY_VIOLATIONS: dict[PenaltyType, ViolationType] = {
    PenaltyType.FALSE_WORK_REPORT: ViolationType.FALSE_REPORT,
    PenaltyType.NO_SHOW: ViolationType.NO_SHOW,
    PenaltyType.POOR_WORK: ViolationType.POOR_WORK,
    PenaltyType.FALSE_DISPUTE: ViolationType.FALSE_DISPUTE,
}


def counterparty(job: Job, user_id: str) -> str | None:
    return job.assigned_to if user_id == job.posted_by else job.posted_by


class JobLifecycleManager:
    def __init__(self, stores: Stores, notifier: Notifier, settings: Settings, clock: Clock = utcnow) -> None:
        self.stores = stores
        self.notifier = notifier
        self.settings = settings
        self.clock = clock
        self.ledger = Ledger(stores, clock)
        self.trust = TrustEngine(stores, clock)

    async def get_job(self, job_id: str) -> Job:
        job = await self.stores.jobs.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    @staticmethod
    def _require(job: Job, status: JobStatus) -> None:
        if not can_transition(job.status, status):
            raise PreconditionFailedError(
                f"Job is {job.status.value}, cannot move to {status.value}",
                details={"job_id": job.id, "status": job.status.value},
            )

    async def _transition(self, job: Job, status: JobStatus, actor: User) -> Job:
        previous = job.transition_to(status)
        job = await self.stores.jobs.save_job(job)
        await log_event(
            self.stores,
            actor.id,
            "job_transition",
            "job",
            job.id,
            {"from": previous.value, "to": status.value},
            at=self.clock(),
        )
        log.info("job_transition", job_id=job.id, from_status=previous.value, to_status=status.value)
        return job

    async def post(
        self,
        actor: User,
        title: str,
        category: str,
        description: str,
        payment_amount: int,
        location: Location,
        images: list[str] | None = None,
    ) -> Job:
        authorize("post", actor)
        if payment_amount <= 0:
            raise BadRequestError("Payment amount must be positive", details={"payment_amount": payment_amount})
        platform_fee, worker_payment = split_payment(payment_amount, self.settings.platform_fee_percentage)
        now = self.clock()
        job = Job(
            title=title,
            category=category,
            description=description,
            images=images or [],
            payment_amount=payment_amount,
            platform_fee=platform_fee,
            worker_payment=worker_payment,
            posted_by=actor.id,
            location=location,
            created_at=now,
        )
        async with self.stores.transaction():
            await self.stores.jobs.insert_job(job)
            await log_event(
                self.stores, actor.id, "job_posted", "job", job.id, {"payment_amount": payment_amount}, at=now
            )
            if self.settings.job_posting_reward > 0:
                await self.ledger.credit(
                    actor.id,
                    TransactionType.JOB_POSTING,
                    self.settings.job_posting_reward,
                    f"Job posted - you earned {self.settings.job_posting_reward} credits!",
                    related_job_id=job.id,
                )
        log.info("job_posted", job_id=job.id, posted_by=actor.id, payment_amount=payment_amount)
        return job

    async def apply(self, actor: User, job_id: str) -> Application:
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("apply", actor, job)
            if await self.stores.jobs.get_application(job.id, actor.id) is not None:
                raise DuplicateApplicationError()
            # The first application moves the job to APPLIED, which closes it to others
            if job.status != JobStatus.POSTED:
                raise PreconditionFailedError(
                    "Job not available",
                    details={"job_id": job.id, "status": job.status.value},
                )
            permission = await self.trust.check_permission(actor.id, "apply_for_jobs")
            if not permission.allowed:
                raise PermissionDeniedError(
                    permission.reason or "Not allowed to apply",
                    details={"score": permission.score, "access_level": permission.access_level.value},
                )
            application = await self.stores.jobs.insert_application(
                Application(job_id=job.id, worker_id=actor.id, applied_at=self.clock())
            )
            job = await self._transition(job, JobStatus.APPLIED, actor)
        await dispatch(
            self.notifier,
            [Notice(job.posted_by, "New Application", f"Someone applied to your job: {job.title}", "applied")],
        )
        return application

    async def select_worker(self, actor: User, job_id: str, worker_id: str) -> Job:
        now = self.clock()
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("select_worker", actor, job)
            self._require(job, JobStatus.SELECTED)
            if await self.stores.jobs.get_application(job.id, worker_id) is None:
                raise NotFoundError("Worker has not applied to this job")
            job.assigned_to = worker_id
            job.started_at = now
            job = await self._transition(job, JobStatus.SELECTED, actor)
            for application in await self.stores.jobs.list_applications(job_id=job.id):
                if application.worker_id == worker_id:
                    application.status = ApplicationStatus.ACCEPTED
                else:
                    application.status = ApplicationStatus.REJECTED
                application.resolved_at = now
                await self.stores.jobs.save_application(application)
        fee = self.settings.platform_fee_percentage
        await dispatch(
            self.notifier,
            [
                Notice(
                    worker_id,
                    "Worker Selected",
                    f"You have been selected! Payment: {job.worker_payment} credits (after {fee:g}% platform fee)",
                    "selected",
                )
            ],
        )
        return job

    async def start_work(self, actor: User, job_id: str) -> Job:
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("start_work", actor, job)
            job = await self._transition(job, JobStatus.IN_PROGRESS, actor)
        await dispatch(
            self.notifier,
            [Notice(job.posted_by, "Work Started", f"Work has started on: {job.title}", "started")],
        )
        return job

    async def submit_completion(self, actor: User, job_id: str, proof: CompletionProof) -> JobCompletion:
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("submit_completion", actor, job)
            self._require(job, JobStatus.PENDING_VERIFICATION)
            completion = await self.stores.jobs.insert_completion(
                JobCompletion(job_id=job.id, worker_id=actor.id, submitted_at=self.clock(), completion_proof=proof)
            )
            job = await self._transition(job, JobStatus.PENDING_VERIFICATION, actor)
        await dispatch(
            self.notifier,
            [
                Notice(
                    job.posted_by,
                    "Work Submitted",
                    f"Worker submitted work. Payment: {job.worker_payment} credits",
                    "verification",
                )
            ],
        )
        return completion

    async def verify(
        self,
        actor: User,
        job_id: str,
        verified: bool,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> Job:
        if rating is not None and not 1 <= rating <= 5:
            raise BadRequestError("Rating must be between 1 and 5", details={"rating": rating})
        now = self.clock()
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("verify", actor, job)
            completion = await self.stores.jobs.get_open_completion(job.id)
            if completion is None:
                raise NoCompletionSubmittedError()
            self._require(job, JobStatus.COMPLETED if verified else JobStatus.DISPUTED)
            completion.user_verified = verified
            completion.user_verified_at = now
            completion.rating = rating
            completion.feedback = feedback
            await self.stores.jobs.save_completion(completion)
            worker_id = job.assigned_to
            if verified:
                job.completed_at = now
                job = await self._transition(job, JobStatus.COMPLETED, actor)
                await self.ledger.credit(
                    worker_id,
                    TransactionType.JOB_COMPLETION,
                    job.worker_payment,
                    f"Payment for: {job.title} (Job: {job.payment_amount}, Platform fee: {job.platform_fee})",
                    related_job_id=job.id,
                )
                await self.trust.reward_completed_job(worker_id, job.id)
                profile = await self.stores.users.get_worker_profile(worker_id) or WorkerProfile(worker_id=worker_id)
                profile.record_payout(job.worker_payment, rating)
                await self.stores.users.save_worker_profile(profile)
                notice = Notice(
                    worker_id,
                    "Job Completed",
                    f"You earned {job.worker_payment} credits! "
                    f"({job.payment_amount} job - {job.platform_fee} platform fee)",
                    "completed",
                )
            else:
                job = await self._transition(job, JobStatus.DISPUTED, actor)
                await self.stores.jobs.insert_dispute(
                    Dispute(
                        job_id=job.id,
                        raised_by=actor.id,
                        raised_against=worker_id,
                        type=DisputeType.WORK_NOT_DONE,
                        description=feedback or "Poster did not accept the submitted work",
                        created_at=now,
                    )
                )
                notice = Notice(
                    worker_id,
                    "Work Not Accepted",
                    f"The poster did not accept your work on: {job.title}. A dispute has been opened.",
                    "dispute",
                )
        await dispatch(self.notifier, [notice])
        return job

    async def report_penalty(
        self,
        actor: User,
        job_id: str,
        penalty_type: PenaltyType,
        description: str | None = None,
    ) -> Penalty:
        now = self.clock()
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("report_penalty", actor, job)
            penalized_id = counterparty(job, actor.id)
            if penalized_id is None or await self.stores.users.get(penalized_id) is None:
                raise NotFoundError("No one to penalize on this job")
            if await self.stores.jobs.find_penalty(job.id, actor.id) is not None:
                raise ConflictError("Penalty already reported for this job", details={"job_id": job.id})
            # Collect what the balance allows; the ledger never goes negative
            balance = await self.ledger.get_balance(penalized_id)
            collected = min(self.settings.penalty_amount, balance)
            if collected > 0:
                await self.ledger.debit(
                    penalized_id,
                    TransactionType.PENALTY,
                    collected,
                    f"Penalty: {penalty_type.value}",
                    related_job_id=job.id,
                )
            await self.trust.apply_violation(
                penalized_id, PENALTY_VIOLATIONS[penalty_type], job_id=job.id, description=description
            )
            penalty = await self.stores.jobs.insert_penalty(
                Penalty(
                    user_id=penalized_id,
                    type=penalty_type,
                    amount=self.settings.penalty_amount,
                    amount_collected=collected,
                    description=description,
                    reported_by=actor.id,
                    related_job_id=job.id,
                    created_at=now,
                )
            )
            await log_event(
                self.stores,
                actor.id,
                "penalty_reported",
                "penalty",
                penalty.id,
                {"job_id": job.id, "type": penalty_type.value, "collected": collected},
                at=now,
            )
        log.info("penalty_reported", job_id=job.id, penalized=penalized_id, type=penalty_type.value, collected=collected)
        await dispatch(
            self.notifier,
            [
                Notice(
                    penalized_id,
                    "Penalty Applied",
                    f"A {penalty_type.value} penalty of {collected} credits was applied for: {job.title}",
                    "penalty",
                )
            ],
        )
        return penalty

    async def raise_dispute(
        self,
        actor: User,
        job_id: str,
        dispute_type: DisputeType,
        description: str,
    ) -> Dispute:
        now = self.clock()
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("raise_dispute", actor, job)
            respondent = counterparty(job, actor.id)
            if respondent is None:
                raise PreconditionFailedError("No one to dispute with until a worker is selected")
            self._require(job, JobStatus.DISPUTED)
            if actor.id == job.assigned_to:
                permission = await self.trust.check_permission(actor.id, "create_dispute")
                if not permission.allowed:
                    raise PermissionDeniedError(permission.reason or "Not allowed to raise disputes")
            dispute = await self.stores.jobs.insert_dispute(
                Dispute(
                    job_id=job.id,
                    raised_by=actor.id,
                    raised_against=respondent,
                    type=dispute_type,
                    description=description,
                    created_at=now,
                )
            )
            job = await self._transition(job, JobStatus.DISPUTED, actor)
        await dispatch(
            self.notifier,
            [Notice(respondent, "Dispute Raised", f"A dispute was raised on: {job.title}", "dispute")],
        )
        return dispute

    async def cancel(self, actor: User, job_id: str) -> Job:
        async with self.stores.transaction():
            job = await self.get_job(job_id)
            authorize("cancel", actor, job)
            job = await self._transition(job, JobStatus.CANCELLED, actor)
        return job

    # Read side

    async def list_open_jobs(
        self,
        statuses: list[JobStatus] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        return await self.stores.jobs.list_jobs(statuses=statuses or OPEN_STATUSES, limit=limit, offset=offset)

    async def list_posted_jobs(self, actor: User, limit: int = 50, offset: int = 0) -> list[tuple[Job, int]]:
        """Poster's jobs with their applicant counts."""
        jobs = await self.stores.jobs.list_jobs(posted_by=actor.id, limit=limit, offset=offset)
        return [(job, await self.stores.jobs.count_applications(job.id)) for job in jobs]

    async def list_assigned_jobs(self, actor: User, limit: int = 50, offset: int = 0) -> list[Job]:
        return await self.stores.jobs.list_jobs(assigned_to=actor.id, limit=limit, offset=offset)

    async def list_job_applications(self, actor: User, job_id: str) -> list[Application]:
        job = await self.get_job(job_id)
        authorize("list_applications", actor, job)
        return await self.stores.jobs.list_applications(job_id=job.id)

    async def list_my_applications(self, actor: User) -> list[Application]:
        return await self.stores.jobs.list_applications(worker_id=actor.id)

    async def list_penalties(self, user_id: str) -> list[Penalty]:
        return await self.stores.jobs.list_penalties(user_id)

    async def list_disputes(self, user_id: str) -> list[Dispute]:
        return await self.stores.jobs.list_disputes(user_id)

    async def job_history(self, job_id: str) -> list[AuditLog]:
        await self.get_job(job_id)
        return await self.stores.audit.list_for_entity("job", job_id)
