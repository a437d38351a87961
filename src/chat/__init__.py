"""Chat export data model, timestamp helpers, and JSON I/O."""

from .chat_io import (
    conversation_to_dict,
    conversations_to_payload,
    load_conversations,
    max_sequence,
)
from .models import (
    EMPTY_SENDER_KEY,
    Attachment,
    Conversation,
    MediaContent,
    MediaDescriptor,
    MediaIndex,
    MediaRecord,
    Message,
    MultiMap,
    ParsedConversation,
    Participant,
    RawMessageRecord,
    ReplyContext,
)
from .timestamps import DateOrder, infer_date_order, parse_date_label, parse_date_time
