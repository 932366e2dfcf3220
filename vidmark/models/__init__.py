from vidmark.models.job import Job, JobStatus

__all__ = ["Job", "JobStatus"]
