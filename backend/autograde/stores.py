"""In-memory stores for subject configuration and submission history."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from autograde.schemas import SubjectConfig, Submission

Listener = Callable[[], None]


class _Observable:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()


def _clean_subject_name(name: str) -> str:
    clean = name.strip()
    if not clean:
        raise ValueError("Subject name must not be blank")
    return clean


class ConfigurationStore(_Observable):
    """Per-subject model answer key and question paper configuration.

    Subject names are case-sensitive and keep insertion order. Subjects are
    created explicitly via :meth:`add_subject` and never deleted here.
    """

    def __init__(self, configs: Mapping[str, SubjectConfig] | None = None) -> None:
        super().__init__()
        self._configs: dict[str, SubjectConfig] = dict(configs or {})

    def __contains__(self, subject: str) -> bool:
        return subject.strip() in self._configs

    def get(self, subject: str) -> SubjectConfig:
        config = self._configs.get(subject.strip())
        if config is None:
            return SubjectConfig()
        return config.model_copy(deep=True)

    def set(self, subject: str, config: SubjectConfig) -> None:
        self._configs[_clean_subject_name(subject)] = config.model_copy(deep=True)
        self._notify()

    def add_subject(self, name: str) -> bool:
        """Create a default config for ``name``. Returns False if it already existed."""
        clean = _clean_subject_name(name)
        if clean in self._configs:
            return False
        self._configs[clean] = SubjectConfig()
        self._notify()
        return True

    def list_subjects(self) -> list[str]:
        return list(self._configs.keys())

    def snapshot(self) -> dict[str, SubjectConfig]:
        return {name: config.model_copy(deep=True) for name, config in self._configs.items()}

    def replace_all(self, configs: Mapping[str, SubjectConfig]) -> None:
        self._configs = {name: config.model_copy(deep=True) for name, config in configs.items()}
        self._notify()


class SubmissionStore(_Observable):
    """Append-only history of graded submissions, newest first."""

    def __init__(self, submissions: Iterable[Submission] | None = None) -> None:
        super().__init__()
        self._submissions: list[Submission] = list(submissions or [])

    def __len__(self) -> int:
        return len(self._submissions)

    def append(self, submission: Submission) -> None:
        if any(existing.id == submission.id for existing in self._submissions):
            raise ValueError(f"Submission {submission.id} already recorded")
        self._submissions.insert(0, submission)
        self._notify()

    def get(self, submission_id: str) -> Submission | None:
        for submission in self._submissions:
            if submission.id == submission_id:
                return submission
        return None

    def list_all(self) -> list[Submission]:
        return list(self._submissions)

    def list_by_subject(self, subject: str) -> list[Submission]:
        return [s for s in self._submissions if s.subject == subject]

    def list_by_student(self, name: str) -> list[Submission]:
        return [s for s in self._submissions if s.student_name == name]

    def reset(self, seed: Iterable[Submission]) -> None:
        """Replace the whole history. Destructive."""
        self._submissions = list(seed)
        self._notify()
