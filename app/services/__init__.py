# Services package.
#
# The relationship consistency engine lives here.  Bottom-up:
#
#   relationships    : RelationshipMaintainer: attach/detach post links
#   comment_tree     : CommentTreeManager: reply tree links + subtree delete
#   post_service      \
#   category_service   |
#   tag_service        |  one coordinator per entity kind: validate, write
#   comment_service    |  the primary document, fan out back-references,
#   user_service      /   return an Envelope or raise a BlogError
#   reconcile        : sweep that re-derives back-references from forward ones
#
# All service functions accept an EntityStore as their first argument.
# Each store call is its own transaction; there is no request-wide one.
