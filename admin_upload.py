import argparse
import json
import mimetypes
import os

from config import get_settings
from doc_ingest import detect_kind, extract_text
from llm import LLMClient
from storage import build_storage


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run upload processing on a local file.")
    parser.add_argument(
        "--file",
        required=True,
        help="Path to the file to process (pdf, docx, xlsx, csv, txt, image)"
    )
    parser.add_argument(
        "--store",
        action="store_true",
        help="Also upload the file to the configured storage backend"
    )
    parser.add_argument(
        "--summarize",
        action="store_true",
        help="Also ask the language model for a summary"
    )

    args = parser.parse_args(argv)
    file_path = args.file

    if not os.path.exists(file_path):
        print(f"❌ File not found: {file_path}")
        return 1

    filename = os.path.basename(file_path)
    content_type = mimetypes.guess_type(filename)[0] or ""
    kind = detect_kind(content_type, filename)

    print(f"📂 Processing '{file_path}' (type={content_type or 'unknown'}, extractor={kind or 'none'})...")
    with open(file_path, "rb") as f:
        data = f.read()

    settings = get_settings()
    result = {
        "file_name": filename,
        "file_type": content_type,
        "file_url": None,
        "extracted_text": extract_text(data, content_type, filename),
        "ai_summary": None,
    }

    try:
        if args.store:
            result["file_url"] = build_storage(settings).upload(data, filename, content_type).url
        if args.summarize and result["extracted_text"].strip():
            result["ai_summary"] = LLMClient(settings).summarize(result["extracted_text"])
    except Exception as e:
        print(f"❌ Error during processing: {e}")
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2))
    print(f"✅ Done. Extracted {len(result['extracted_text'])} characters.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
