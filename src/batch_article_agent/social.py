"""X (Twitter) announcement posts for a finished article."""

import logging

from batch_article_agent.client import parse_json_response
from batch_article_agent.prompts import x_posts_prompt
from batch_article_agent.research import LLMCall
from batch_article_agent.state import JobSpec, XPost

logger = logging.getLogger(__name__)

MAX_SHORT_POST_LENGTH = 140


async def generate_x_posts(
    llm: LLMCall,
    spec: JobSpec,
    title: str,
    summary: str,
    audiences: list[str],
) -> list[XPost]:
    """Generate one short post per target audience.

    Raises:
        ValueError: if the model response holds no usable posts.
    """
    system_prompt, user_message = x_posts_prompt(spec, title, summary, audiences)
    result = await llm(system_prompt, user_message, trace_name="x_posts")
    parsed = parse_json_response(result["text"])

    raw_posts = parsed.get("posts", []) if isinstance(parsed, dict) else parsed
    posts: list[XPost] = []
    for raw in raw_posts or []:
        if not isinstance(raw, dict) or not raw.get("text"):
            continue
        text = str(raw["text"]).strip()
        if len(text) > MAX_SHORT_POST_LENGTH:
            logger.debug("X post for %r exceeds %d chars", spec.keyword, MAX_SHORT_POST_LENGTH)
        posts.append(XPost(target=str(raw.get("target", "")), text=text, type="short"))

    if not posts:
        raise ValueError("X post generation returned no posts")
    return posts
