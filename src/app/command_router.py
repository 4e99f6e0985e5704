from typing import Dict, Literal, Optional

from pydantic import BaseModel

DEFAULT_TRIGGER_COMMANDS: Dict[str, str] = {
    "start today's analysis": "pa-browser-analysis-specialist",
    "run maintenance": "pa-maintenance",
    "maintenance check": "pa-maintenance",
    "daily brief": "morning-planning",
    "bradoria weekly report": "bradoria-analysis",
    "bradoria focus": "bradoria-analysis",
    "shopify analysis": "bradoria-analysis",
}

DEFAULT_TASK_FOLDERS: Dict[str, str] = {
    "browser-analysis": "daily-browser-analysis",
    "maintenance": "maintenance-tasks",
    "social-media": "social-media-post-generation",
    "bradoria": "bradoria-shopify-analysis",
}


class TaskInfo(BaseModel):
    """How an incoming message should be handled."""

    type: Literal["pa-task", "general-chat"] = "general-chat"
    agent: Optional[str] = None
    task_folder: Optional[str] = None
    command: Optional[str] = None

    @property
    def is_task(self) -> bool:
        return self.type == "pa-task"


def _folder_key(agent: str) -> str:
    key = agent
    if key.startswith("pa-"):
        key = key[len("pa-"):]
    if key.endswith("-specialist"):
        key = key[: -len("-specialist")]
    return key


def identify_task(
    message: str,
    trigger_commands: Optional[Dict[str, str]] = None,
    task_folders: Optional[Dict[str, str]] = None,
) -> TaskInfo:
    """
    Match a message against the automation trigger table.

    Matching is a case-insensitive substring test; the first trigger found
    in the message wins.
    """
    triggers = DEFAULT_TRIGGER_COMMANDS if trigger_commands is None else trigger_commands
    folders = DEFAULT_TASK_FOLDERS if task_folders is None else task_folders

    lower_message = message.lower().strip()
    for trigger, agent in triggers.items():
        if trigger.lower() in lower_message:
            return TaskInfo(
                type="pa-task",
                agent=agent,
                task_folder=folders.get(_folder_key(agent)),
                command=trigger,
            )

    return TaskInfo()


def enhance_prompt(message: str, task_info: TaskInfo) -> str:
    """Wrap an automation task in the orchestration prompt; chat passes through."""
    if not task_info.is_task:
        return message

    lines = [
        f"Task: {message}",
        "",
        "Context: This is a Personal Assistant automation task.",
        f"Agent: Use the {task_info.agent} agent for execution.",
    ]
    if task_info.task_folder:
        lines.append(
            f"Instructions: Read {task_info.task_folder}/INSTRUCTIONS.md for detailed steps."
        )
    lines.extend(
        [
            "",
            "Important:",
            "1. Read PERSONAL_ASSISTANT_TASKS.md for task orchestration context",
            f"2. Use the Task tool to delegate to {task_info.agent}",
            "3. Follow the execution pattern from INSTRUCTIONS.md",
            "4. Generate comprehensive reports with results",
            "5. Create Notion database entries if required",
            "",
            "Execute the task now.",
        ]
    )
    return "\n".join(lines)
