"""Report rendering."""

from depreview.report.markdown import CommentBuilder, Emoji, TextStyle, render_update_review

__all__ = ["CommentBuilder", "Emoji", "TextStyle", "render_update_review"]
