# setup_fonts.py

import logging
import os
import shutil
import urllib.request
import zipfile

# --- Constants for Font Setup ---
FONT_DIR = 'fonts'
# Regular and bold files for each layout font family.
REQUIRED_FONTS = {
    "sans": {"regular": "DejaVuSans.ttf", "bold": "DejaVuSans-Bold.ttf"},
    "serif": {"regular": "DejaVuSerif.ttf", "bold": "DejaVuSerif-Bold.ttf"},
    "monospace": {"regular": "DejaVuSansMono.ttf", "bold": "DejaVuSansMono-Bold.ttf"},
}
FONT_PATHS = {
    family: {weight: os.path.join(FONT_DIR, fname) for weight, fname in files.items()}
    for family, files in REQUIRED_FONTS.items()
}

# URL for a specific stable release ZIP file from GitHub
FONT_URL = "https://github.com/dejavu-fonts/dejavu-fonts/releases/download/version_2_37/dejavu-fonts-ttf-2.37.zip"
FONT_ZIP_PATH = os.path.join(FONT_DIR, 'dejavu-fonts-temp.zip')
FONT_EXTRACT_DIR = os.path.join(FONT_DIR, 'extracted_fonts')


def fonts_available(family):
    """True when the regular and bold DejaVu files of a layout family are installed."""
    paths = FONT_PATHS.get(family)
    return bool(paths) and all(os.path.exists(path) for path in paths.values())


def _all_font_files():
    return [(FONT_PATHS[family][weight], fname)
            for family, files in REQUIRED_FONTS.items()
            for weight, fname in files.items()]


def setup_fonts(force_download=False):
    """Checks for the DejaVu Sans/Serif/Mono fonts and downloads them if missing."""
    logging.info("--- Checking/Setting up PDF fonts (DejaVu Sans, Serif, Sans Mono) ---")
    os.makedirs(FONT_DIR, exist_ok=True)

    if all(fonts_available(family) for family in REQUIRED_FONTS) and not force_download:
        logging.info("Required DejaVu fonts found.")
        return True

    if force_download:
        logging.info("Forcing download/reinstallation of fonts...")
        for path, _ in _all_font_files():
            if os.path.exists(path):
                os.remove(path)
    else:
        logging.info("One or more DejaVu fonts not found. Attempting download...")

    # Clean up temp files from previous attempts
    if os.path.exists(FONT_ZIP_PATH):
        os.remove(FONT_ZIP_PATH)
    if os.path.exists(FONT_EXTRACT_DIR):
        shutil.rmtree(FONT_EXTRACT_DIR)

    # --- Download ---
    try:
        logging.info(f"Downloading fonts archive from {FONT_URL}...")
        req = urllib.request.Request(FONT_URL, headers={'User-Agent': 'Mozilla/5.0'})
        with urllib.request.urlopen(req) as response, open(FONT_ZIP_PATH, 'wb') as out_file:
            if response.status != 200:
                raise OSError(f"Download failed: HTTP {response.status}")
            shutil.copyfileobj(response, out_file)
        logging.info(f"Download complete: {FONT_ZIP_PATH}")
    except OSError as e:
        logging.error(f"Failed to download fonts: {e}")
        if os.path.exists(FONT_ZIP_PATH):
            os.remove(FONT_ZIP_PATH)
        return False

    # --- Extract ---
    try:
        logging.info(f"Extracting fonts from {FONT_ZIP_PATH}...")
        os.makedirs(FONT_EXTRACT_DIR, exist_ok=True)
        with zipfile.ZipFile(FONT_ZIP_PATH, 'r') as zip_ref:
            zip_ref.extractall(FONT_EXTRACT_DIR)
    except (OSError, zipfile.BadZipFile) as e:
        logging.error(f"Failed to extract fonts: {e}")
        shutil.rmtree(FONT_EXTRACT_DIR, ignore_errors=True)
        if os.path.exists(FONT_ZIP_PATH):
            os.remove(FONT_ZIP_PATH)
        return False

    # --- Find and Move Required Fonts ---
    try:
        wanted = {fname: path for path, fname in _all_font_files()}
        for root, _, files in os.walk(FONT_EXTRACT_DIR):
            for fname in files:
                if fname in wanted and not os.path.exists(wanted[fname]):
                    logging.info(f"Moving {fname} to {FONT_DIR}...")
                    shutil.move(os.path.join(root, fname), wanted[fname])
        missing = [fname for fname, path in wanted.items() if not os.path.exists(path)]
        for fname in missing:
            logging.warning(f"Expected font file '{fname}' not found in archive.")
    except OSError as e:
        logging.error(f"Failed while moving fonts: {e}")

    # --- Cleanup ---
    finally:
        logging.info("Cleaning up temporary download files...")
        for leftover in (FONT_ZIP_PATH, FONT_EXTRACT_DIR):
            try:
                if os.path.isdir(leftover):
                    shutil.rmtree(leftover)
                elif os.path.exists(leftover):
                    os.remove(leftover)
            except OSError as e:
                logging.warning(f"Could not remove {leftover}: {e}")

    installed = [family for family in REQUIRED_FONTS if fonts_available(family)]
    if len(installed) == len(REQUIRED_FONTS):
        logging.info(f"All {len(REQUIRED_FONTS)} font families installed/verified.")
        return True
    logging.error(f"Font installation incomplete. Installed families: {installed or 'none'}")
    return False


# Allow running this script directly for setup/update
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    if setup_fonts(force_download=True):
        logging.info("Font setup completed successfully.")
    else:
        logging.error("Font setup failed.")
