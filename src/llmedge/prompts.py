"""Chat template rendering."""
from __future__ import annotations

from functools import lru_cache
from typing import Sequence

from jinja2 import Template, TemplateError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from .engines.base import ChatMessage
from .exceptions import ChatTemplateError


DEFAULT_SYSTEM = "You are a helpful assistant."

LLAMA3_TEMPLATE = (
    "{% set loop_messages = messages %}"
    "{% for message in loop_messages %}"
    "{% set content = '<|start_header_id|>' + message['role'] + '<|end_header_id|>\n\n'"
    " + message['content'] | trim + '<|eot_id|>' %}"
    "{% if loop.index0 == 0 %}{% set content = bos_token + content %}{% endif %}"
    "{{ content }}"
    "{% endfor %}"
    "{{ '<|start_header_id|>assistant<|end_header_id|>\n\n' }}"
)

CHATML_TEMPLATE = (
    "{% for message in messages %}"
    "{% if loop.first %}{{ bos_token }}{% endif %}"
    "{{ '<|im_start|>' + message['role'] + '\n' + message['content'] + '<|im_end|>\n' }}"
    "{% endfor %}"
    "{% if add_generation_prompt %}{{ '<|im_start|>assistant\n' }}{% endif %}"
)

GEMMA_TEMPLATE = (
    "{{ bos_token }}"
    "{% for message in messages %}"
    "{% set role = 'model' if message['role'] == 'assistant' else message['role'] %}"
    "{{ '<start_of_turn>' + role + '\n' + message['content'] | trim + '<end_of_turn>\n' }}"
    "{% endfor %}"
    "{% if add_generation_prompt %}{{ '<start_of_turn>model\n' }}{% endif %}"
)

TEMPLATES = {
    "llama3": LLAMA3_TEMPLATE,
    "chatml": CHATML_TEMPLATE,
    "gemma": GEMMA_TEMPLATE,
}


def resolve_chat_template(name_or_source: str | None) -> str:
    if not name_or_source:
        return ""
    return TEMPLATES.get(name_or_source, name_or_source)


def _raise_exception(message: str) -> None:
    raise TemplateError(message)


@lru_cache(maxsize=16)
def _compile(source: str) -> Template:
    env = ImmutableSandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
    env.globals["raise_exception"] = _raise_exception
    try:
        return env.from_string(source)
    except TemplateError as exc:
        raise ChatTemplateError(f"Invalid chat template: {exc}") from exc


def render_prompt(
    messages: Sequence[ChatMessage],
    chat_template: str,
    bos_token: str = "",
    eos_token: str = "",
    add_generation_prompt: bool = True,
) -> str:
    """Render ``messages`` into the single prompt string the engine expects.

    The same messages and template always give the same prompt. An empty
    template falls back to a plain ``Role: content`` transcript.
    """
    if not chat_template:
        return _plain_prompt(messages, add_generation_prompt)
    template = _compile(chat_template)
    try:
        return template.render(
            messages=[msg.as_dict() for msg in messages],
            bos_token=bos_token,
            eos_token=eos_token,
            add_generation_prompt=add_generation_prompt,
        )
    except TemplateError as exc:
        raise ChatTemplateError(f"Chat template failed to render: {exc}") from exc


def _plain_prompt(messages: Sequence[ChatMessage], add_generation_prompt: bool) -> str:
    lines = []
    for msg in messages:
        lines.append(f"{msg.role.value.capitalize()}: {msg.content}")
    if add_generation_prompt:
        lines.append("Assistant:")
    return "\n".join(lines)
