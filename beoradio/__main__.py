"""python -m beoradio"""

from .service import main

main()
