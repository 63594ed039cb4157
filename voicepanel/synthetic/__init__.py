"""
Synthetic respondents: variant generation, concept reactions and theme
summaries backed by the generative provider.
"""
from voicepanel.synthetic.ai_respondent import AIRespondent
from voicepanel.synthetic.reaction_parser import ConceptReaction, parse_reaction
from voicepanel.synthetic.variant_normalizer import extract_variant_list, normalize_variants

__all__ = [
    "AIRespondent",
    "ConceptReaction",
    "parse_reaction",
    "extract_variant_list",
    "normalize_variants",
]
