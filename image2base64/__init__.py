"""image2base64 : conversion de documents en base64 et extraction IA de champs structurés.

Ce package fournit :
- Le chargement de la configuration et les structures typées (FileRecord, PageImage...)
- Le codec base64 avec détection du type MIME (data URI ou signature)
- Le découpage des PDF en images de pages
- Le client d'extraction Azure OpenAI
- Le store du lot en mémoire et l'orchestrateur séquentiel
- L'export Excel et le rendu des résultats
- Une CLI pour traiter des fichiers/dossiers ou décoder une chaîne base64
"""

__all__ = [
    "config",
    "types",
    "codec",
    "debounce",
    "pdf_service",
    "extraction_service",
    "store",
    "orchestrator",
    "results",
    "export",
    "snapshot",
    "storage",
    "writer",
]
