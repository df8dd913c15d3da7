"""Upload → edit → generate, as an explicit state machine.

Sessions are immutable; every transition returns a new Session and raises
InvalidTransition when called from the wrong step.

    UPLOADING --uploaded--> EDITING --generated--> GENERATED
        ^                     |  ^                     |
        +--------back---------+  +--------edit---------+
    reset() from anywhere → fresh UPLOADING
"""
import enum
from dataclasses import dataclass, field, replace

from article import Metadata


class Step(enum.Enum):
    UPLOADING = 'uploading'
    EDITING = 'editing'
    GENERATED = 'generated'


class InvalidTransition(Exception):
    pass


@dataclass(frozen=True)
class Session:
    step: Step = Step.UPLOADING
    text: str = ''
    metadata: Metadata = field(default_factory=Metadata)
    xml: str = ''
    warning: str = ''


def _require(session, step, action):
    if session.step is not step:
        raise InvalidTransition(f'cannot {action} while {session.step.value}')


def reset():
    return Session()


def uploaded(session, text, metadata, warning=''):
    _require(session, Step.UPLOADING, 'upload')
    return replace(session, step=Step.EDITING, text=text, metadata=metadata, xml='', warning=warning)


def generated(session, metadata, xml):
    _require(session, Step.EDITING, 'generate')
    return replace(session, step=Step.GENERATED, metadata=metadata, xml=xml)


def edit(session):
    _require(session, Step.GENERATED, 'edit')
    return replace(session, step=Step.EDITING, xml='')


def back(session):
    _require(session, Step.EDITING, 'go back')
    return reset()
