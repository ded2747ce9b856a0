from newsroom.models.news_item import RawItem
from newsroom.models.article import Article, ArticleStatus, Publication
from newsroom.models.pipeline_run import PipelineRunRecord

__all__ = [
    # Collection
    'RawItem',
    # Articles
    'Article',
    'ArticleStatus',
    'Publication',
    # Runs
    'PipelineRunRecord',
]
