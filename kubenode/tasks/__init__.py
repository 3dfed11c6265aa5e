from kubenode.core.models import StepResult, SubTaskResult


def fail(sub_res: SubTaskResult) -> StepResult:
    """
    Helper to return a fatal StepResult from a failed SubTaskResult.
    """
    return StepResult.fatal(sub_res.message)


__all__ = [
    "fail"
]
