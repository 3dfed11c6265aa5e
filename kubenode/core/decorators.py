from functools import wraps

from kubenode.core.errors import classify
from kubenode.core.models import StepResult, SubTaskResult
from kubenode.core.state import config as global_config
from kubenode.utils.logger import logger, sys_logger

console = logger.console


def guarded(step_name: str, func, *args, **kwargs) -> StepResult:
    """
    Runs func and converts any exception into a classified StepResult.
    Unexpected exceptions become fatal "System Error" results, logged with traceback.
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        result = classify(e)
        if result is None:
            sys_logger.error(f"CRITICAL EXCEPTION in '{step_name}': {e}", exc_info=True)
            return StepResult.fatal(f"System Error: {e}")
        sys_logger.warning(f"'{step_name}' raised {type(e).__name__}: {e}")
        return result


def automated_step(step_name: str):
    """
    Decorator for a step's apply function.
    1. Logs start and end to file.
    2. Classifies exceptions instead of letting them escape (Crash Prevention).
    3. Ensures the return value is a StepResult the Sequencer understands.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs) -> StepResult:
            sys_logger.info(f"START step='{step_name}'")

            result = guarded(step_name, func, *args, **kwargs)
            if not isinstance(result, StepResult):
                result = StepResult.fatal(f"System Error: '{step_name}' returned {type(result).__name__}")

            sys_logger.info(f"END step='{step_name}' outcome='{result.outcome.value}' message='{result.message}'")
            return result

        return wrapper

    return decorator


def automated_substep(step_name: str):
    """
    Decorator for internal sub-steps.
    In VERBOSE mode, uses a spinner that transforms into the final result.
    Exceptions are reported and re-raised so the step classifier decides retry/abort.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs) -> SubTaskResult:
            sys_logger.info(f"[SUB-START] '{step_name}'")

            try:
                if global_config.VERBOSE:
                    with console.status(f"    [dim]🔹 {step_name}...[/dim]", spinner="dots"):
                        result = func(*args, **kwargs)
                else:
                    result = func(*args, **kwargs)
            except Exception as e:
                sys_logger.error(f"[SUB-CRASH] '{step_name}': {e}")
                if global_config.VERBOSE:
                    console.print(f"    [bold red]💥 {step_name}[/bold red]: {e}")
                raise

            status_log = "OK" if result.success else "FAIL"
            log_msg = f"[SUB-END] '{step_name}' -> {status_log} ({result.message})"

            if result.success:
                sys_logger.info(log_msg)
                if global_config.VERBOSE:
                    mark = "[yellow]✱[/yellow]" if result.changed else "[green]✔[/green]"
                    console.print(f"    {mark} [dim]{step_name}: {result.message}[/dim]")
            else:
                sys_logger.warning(log_msg)
                if global_config.VERBOSE:
                    console.print(f"    [red]✖ {step_name}[/red]: [dim]{result.message}[/dim]")

            return result

        return wrapper

    return decorator
