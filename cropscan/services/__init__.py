"""Services used by the CropScan API: image intake, vision diagnosis,
reference diseases, product lookup and scan history."""
